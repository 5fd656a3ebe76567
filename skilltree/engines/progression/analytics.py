"""
Learning analytics and next-lesson recommendation (read-only views).
"""

import logging
import re
from datetime import datetime
from typing import List, Optional, Set

from pydantic import BaseModel, Field

from skilltree.engines.progression.dependency_graph import DependencyResolver
from skilltree.engines.progression.models import (
    DIFFICULTY_ORDER,
    Collections,
    ExerciseAttempt,
    ItemType,
    Lesson,
    Skill,
    UserLessonCompletion,
    UserSkillProgress,
)
from skilltree.engines.progression.repository import SkillRepository
from skilltree.kernel.store import DocumentStore
from skilltree.logging_config import get_logger

RECENT_ACTIVITY_LIMIT = 10

_GOAL_NOISE = re.compile(r"[^a-zA-Z0-9 ]")


class ActivityItem(BaseModel):
    item_type: ItemType
    item_id: str
    skill_id: Optional[str] = None
    score: Optional[int] = None
    completed_at: datetime


class SkillProgressSummary(BaseModel):
    skill_name: Optional[str] = None
    progress: UserSkillProgress


class LearningAnalytics(BaseModel):
    """Aggregate view of one learner's progress."""

    total_skills_unlocked: int = 0
    total_skills_mastered: int = 0
    total_lessons_completed: int = 0
    total_exercises_passed: int = 0
    average_score: int = 0
    total_xp_earned: int = 0
    skill_progress: List[SkillProgressSummary] = Field(default_factory=list)
    recent_activity: List[ActivityItem] = Field(default_factory=list)


def goal_matches(goal: str, skill: Skill) -> bool:
    """Case-insensitive substring match after dropping punctuation from the goal."""
    needle = _GOAL_NOISE.sub("", goal).strip().lower()
    if not needle:
        return False
    return needle in skill.name.lower() or needle in skill.description.lower()


class AnalyticsService:
    def __init__(
        self,
        store: DocumentStore,
        repository: Optional[SkillRepository] = None,
        resolver: Optional[DependencyResolver] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.repository = repository or SkillRepository(store)
        self.resolver = resolver or DependencyResolver(store, self.repository)
        self.logger = logger or get_logger(__name__)

    async def learning_analytics(self, user_id: str) -> LearningAnalytics:
        progress = [
            UserSkillProgress.model_validate(d)
            for d in await self.store.query(Collections.USER_SKILL_PROGRESS, where={"user_id": user_id})
        ]
        completions = [
            UserLessonCompletion.model_validate(d)
            for d in await self.store.query(Collections.USER_LESSON_COMPLETIONS, where={"user_id": user_id})
        ]
        passed = [
            ExerciseAttempt.model_validate(d)
            for d in await self.store.query(
                Collections.USER_EXERCISE_ATTEMPTS, where={"user_id": user_id, "is_correct": True}
            )
        ]
        skills = await self.repository.get_skills(p.skill_id for p in progress)

        activity = [
            ActivityItem(
                item_type=ItemType.LESSON,
                item_id=c.lesson_id,
                skill_id=c.skill_id,
                completed_at=c.completed_at,
            )
            for c in completions
        ] + [
            ActivityItem(
                item_type=ItemType.EXERCISE,
                item_id=a.exercise_id,
                skill_id=a.skill_id,
                score=a.score,
                completed_at=a.completed_at,
            )
            for a in passed
        ]
        activity.sort(key=lambda item: item.completed_at, reverse=True)

        average = int(sum(a.score for a in passed) / len(passed) + 0.5) if passed else 0
        return LearningAnalytics(
            total_skills_unlocked=sum(1 for p in progress if p.is_unlocked),
            total_skills_mastered=sum(1 for p in progress if p.is_mastered),
            total_lessons_completed=len(completions),
            total_exercises_passed=len(passed),
            average_score=average,
            total_xp_earned=sum(p.total_xp_earned for p in progress),
            skill_progress=[
                SkillProgressSummary(skill_name=skills[p.skill_id].name if p.skill_id in skills else None, progress=p)
                for p in progress
            ],
            recent_activity=activity[:RECENT_ACTIVITY_LIMIT],
        )

    async def _first_uncompleted(self, skill: Skill, completed: Set[str]) -> Optional[Lesson]:
        for lesson in await self.repository.list_skill_lessons(skill.id):
            if lesson.id not in completed:
                return lesson
        return None

    async def recommend_next_lesson(self, user_id: str) -> Optional[Lesson]:
        """
        Next lesson to study among unlocked, unmastered skills.

        Skills matching one of the user's learning goals come first, in goal
        order; otherwise the easiest skill wins (display order breaks ties).
        """
        unlocked = await self.resolver.unlocked_skill_ids(user_id)
        mastered = await self.resolver.mastered_skill_ids(user_id)
        candidates = [
            s for s in await self.repository.list_skills(active_only=True) if s.id in unlocked and s.id not in mastered
        ]
        if not candidates:
            return None

        completed = {
            d["lesson_id"]
            for d in await self.store.query(Collections.USER_LESSON_COMPLETIONS, where={"user_id": user_id})
        }

        goals = await self.repository.get_learning_goals(user_id)
        for goal in goals.goals if goals else []:
            for skill in candidates:
                if goal_matches(goal, skill):
                    lesson = await self._first_uncompleted(skill, completed)
                    if lesson:
                        return lesson

        for skill in sorted(candidates, key=lambda s: DIFFICULTY_ORDER[s.difficulty_level]):
            lesson = await self._first_uncompleted(skill, completed)
            if lesson:
                return lesson
        self.logger.debug("No uncompleted lesson to recommend for %s", user_id)
        return None
