"""
Pydantic schemas for API request/response validation.
"""

from skilltree.schemas.common import ErrorResponse, HealthResponse
from skilltree.schemas.progression import (
    ExerciseSubmitRequest,
    LessonCompletionRequest,
    LessonContentResponse,
    ProfileResponse,
    RecommendationResponse,
    ReviewRequest,
    SkillLessonsContentResponse,
    SkillTiersResponse,
    TierSkill,
    UnlockCheckResponse,
    UnlockedSkillsResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "ExerciseSubmitRequest",
    "LessonCompletionRequest",
    "LessonContentResponse",
    "ProfileResponse",
    "RecommendationResponse",
    "ReviewRequest",
    "SkillLessonsContentResponse",
    "SkillTiersResponse",
    "TierSkill",
    "UnlockCheckResponse",
    "UnlockedSkillsResponse",
]
