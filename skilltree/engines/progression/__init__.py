"""
Skill Progression Engine - dependency-gated skills, mastery and review.

Components:
- DependencyResolver: unlock eligibility and topological tiers
- MasteryTracker: lesson completions, exercise attempts, derived mastery
- ContentIngestor: generated lesson content, repaired and validated
- ExerciseEvaluator: MCQ and AI grading with degraded fallback
- ReviewScheduler: SM-2 style spaced review
- level_for_xp / XPLedger: XP and levels (500 XP per level)
"""

from skilltree.engines.progression.analytics import AnalyticsService, LearningAnalytics
from skilltree.engines.progression.content_ingestion import ContentIngestor, normalize_markdown
from skilltree.engines.progression.dependency_graph import DependencyResolver, TierPolicy, compute_tiers
from skilltree.engines.progression.errors import (
    AttemptLimitError,
    ContentGenerationError,
    DataIntegrityError,
    NotFoundError,
    ProgressionError,
    SkillLockedError,
)
from skilltree.engines.progression.evaluator import ExerciseEvaluator
from skilltree.engines.progression.leveling import XP_PER_LEVEL, level_for_xp
from skilltree.engines.progression.mastery_tracker import ExerciseSubmission, MasteryTracker, ProgressUpdate
from skilltree.engines.progression.repository import SkillRepository
from skilltree.engines.progression.review_scheduler import DueReview, ReviewScheduler
from skilltree.engines.progression.rewards import XPAward, XPLedger

__all__ = [
    "AnalyticsService",
    "LearningAnalytics",
    "ContentIngestor",
    "normalize_markdown",
    "DependencyResolver",
    "TierPolicy",
    "compute_tiers",
    "AttemptLimitError",
    "ContentGenerationError",
    "DataIntegrityError",
    "NotFoundError",
    "ProgressionError",
    "SkillLockedError",
    "ExerciseEvaluator",
    "XP_PER_LEVEL",
    "level_for_xp",
    "ExerciseSubmission",
    "MasteryTracker",
    "ProgressUpdate",
    "SkillRepository",
    "DueReview",
    "ReviewScheduler",
    "XPAward",
    "XPLedger",
]
