"""
Error taxonomy for the progression engine.

Inconclusive AI grading is deliberately absent: it is reported as partial
feedback, never raised.
"""

from typing import Iterable, List, Optional


class ProgressionError(Exception):
    """Base class for errors surfaced by the progression engine."""


class DataIntegrityError(ProgressionError):
    """The skill graph or a content record violates a structural invariant."""

    def __init__(self, message: str, skill_ids: Optional[Iterable[str]] = None):
        self.skill_ids: List[str] = sorted(skill_ids or [])
        super().__init__(message)


class ContentGenerationError(ProgressionError):
    """Generated text could not be turned into valid lesson content."""

    def __init__(self, message: str, raw_text: Optional[str] = None, lesson_id: Optional[str] = None):
        self.raw_text = raw_text
        self.lesson_id = lesson_id
        super().__init__(message)


class NotFoundError(ProgressionError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class SkillLockedError(ProgressionError):
    """Progress was reported for a skill the user has not unlocked."""

    def __init__(self, user_id: str, skill_id: str):
        self.user_id = user_id
        self.skill_id = skill_id
        super().__init__(f"Skill {skill_id} is locked for user {user_id}")


class AttemptLimitError(ProgressionError):
    """The user has used every attempt the exercise allows."""

    def __init__(self, exercise_id: str, max_attempts: int):
        self.exercise_id = exercise_id
        self.max_attempts = max_attempts
        super().__init__(f"Exercise {exercise_id} allows at most {max_attempts} attempts")
