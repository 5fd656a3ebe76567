"""
Request/response schemas for the progression endpoints.

Engine result models (ProgressUpdate, ExerciseSubmission, DueReview, ...)
are already Pydantic and are returned as-is; this module holds the request
bodies and the thin wrappers around plain values.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from skilltree.engines.progression.models import ItemType, Lesson, LessonSection


class LessonCompletionRequest(BaseModel):
    time_spent: int = Field(0, ge=0, description="Seconds spent on the lesson")
    comprehension_score: float = Field(0, ge=0, le=100)
    notes: Optional[str] = None


class ExerciseSubmitRequest(BaseModel):
    answer: Any = Field(..., description='Option text, {"selected_option": ...}, or free-form answer')
    time_spent: int = Field(0, ge=0)


class ReviewRequest(BaseModel):
    item_id: str
    item_type: ItemType
    was_correct: bool


class UnlockCheckResponse(BaseModel):
    skill_id: str
    unlockable: bool


class UnlockedSkillsResponse(BaseModel):
    skill_ids: List[str]


class TierSkill(BaseModel):
    id: str
    name: str
    prerequisites: List[str] = Field(default_factory=list)


class SkillTiersResponse(BaseModel):
    """Tier N lists skills whose prerequisites all sit in tiers < N."""

    tiers: List[List[TierSkill]]


class LessonContentResponse(BaseModel):
    lesson_id: str
    sections: List[LessonSection]


class SkillLessonsContentResponse(BaseModel):
    skill_id: str
    lessons: Dict[str, List[LessonSection]]


class RecommendationResponse(BaseModel):
    lesson: Optional[Lesson] = None


class ProfileResponse(BaseModel):
    user_id: str
    xp: int
    level: int
    xp_to_next_level: int
