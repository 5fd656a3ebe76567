"""
Mastery Tracker - per-user skill progress derived from completed work.

mastery_level is never incremented: every event recounts the completed
lessons and passed exercises of the skill and divides by the skill's active
item count. Racing events therefore converge on the same value. The
progress write is one atomic update; is_unlocked and is_mastered only ever
move from False to True.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, NamedTuple, Optional, Set, Tuple

from pydantic import BaseModel, Field, computed_field

from skilltree.ai.text_generation import TextGenerator
from skilltree.engines.progression.dependency_graph import DependencyResolver
from skilltree.engines.progression.errors import NotFoundError, SkillLockedError
from skilltree.engines.progression.evaluator import ExerciseEvaluator
from skilltree.engines.progression.models import (
    AIFeedback,
    Collections,
    ExerciseAttempt,
    ItemType,
    Skill,
    UserLessonCompletion,
    UserSkillProgress,
    completion_key,
    progress_key,
    xp_award_key,
)
from skilltree.engines.progression.repository import SkillRepository
from skilltree.engines.progression.review_scheduler import ReviewScheduler
from skilltree.engines.progression.rewards import XPAward, XPLedger
from skilltree.kernel.store import DocumentExistsError, DocumentMissingError, DocumentStore
from skilltree.logging_config import get_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressUpdate(BaseModel):
    """Result of one progress-affecting event."""

    skill_id: str
    progress: UserSkillProgress
    mastery_achieved: bool = False
    newly_unlocked: List[str] = Field(default_factory=list)
    xp_award: Optional[XPAward] = None
    # True when the event had already been recorded; only work an earlier
    # failed call left undone was applied
    already_recorded: bool = False


class ExerciseSubmission(BaseModel):
    attempt: ExerciseAttempt
    feedback: AIFeedback
    update: ProgressUpdate

    @computed_field
    @property
    def mastery_achieved(self) -> bool:
        return self.update.mastery_achieved


class _Tally(NamedTuple):
    lesson_ids: Set[str]
    exercise_ids: Set[str]
    total: int


class MasteryTracker:
    """
    Records completions and attempts and keeps UserSkillProgress current.

    Collaborators are injected; the defaults build the standard components
    on the same store and generator.
    """

    def __init__(
        self,
        store: DocumentStore,
        generator: TextGenerator,
        repository: Optional[SkillRepository] = None,
        resolver: Optional[DependencyResolver] = None,
        evaluator: Optional[ExerciseEvaluator] = None,
        scheduler: Optional[ReviewScheduler] = None,
        ledger: Optional[XPLedger] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.logger = logger or get_logger(__name__)
        self.repository = repository or SkillRepository(store)
        self.resolver = resolver or DependencyResolver(store, self.repository, logger=self.logger)
        self.evaluator = evaluator or ExerciseEvaluator(store, generator, logger=self.logger)
        self.scheduler = scheduler or ReviewScheduler(store, self.repository, logger=self.logger)
        self.ledger = ledger or XPLedger(store, logger=self.logger)
        self.clock = clock

    # ── Progress records ─────────────────────────────────────────────────

    async def get_progress(self, user_id: str, skill_id: str) -> Optional[UserSkillProgress]:
        doc = await self.store.get(Collections.USER_SKILL_PROGRESS, progress_key(user_id, skill_id))
        return UserSkillProgress.model_validate(doc) if doc else None

    async def _unlock(self, user_id: str, skill_id: str, now: datetime) -> Tuple[UserSkillProgress, bool]:
        """Create or flip the progress record to unlocked. Returns (progress, changed)."""
        key = progress_key(user_id, skill_id)
        fresh = UserSkillProgress(user_id=user_id, skill_id=skill_id, is_unlocked=True, first_unlocked_at=now)
        try:
            stored = await self.store.create(Collections.USER_SKILL_PROGRESS, key, fresh.to_document())
            return UserSkillProgress.model_validate(stored), True
        except DocumentExistsError:
            pass

        changed: List[bool] = []

        def apply(current: Any) -> dict:
            if current.get("is_unlocked"):
                return {}
            changed.append(True)
            return {"is_unlocked": True, "first_unlocked_at": current.get("first_unlocked_at") or now.isoformat()}

        stored = await self.store.update(Collections.USER_SKILL_PROGRESS, key, apply)
        return UserSkillProgress.model_validate(stored), bool(changed)

    async def unlock_skill(
        self, user_id: str, skill_id: str, now: Optional[datetime] = None
    ) -> Optional[UserSkillProgress]:
        """
        Unlock a skill explicitly.

        Returns the progress record, or None if prerequisites are unmet.
        Unlocking an unlocked skill returns the existing record unchanged.
        """
        await self.repository.get_skill(skill_id)
        existing = await self.get_progress(user_id, skill_id)
        if existing and existing.is_unlocked:
            return existing
        if not await self.resolver.is_unlockable(user_id, skill_id):
            return None
        progress, _ = await self._unlock(user_id, skill_id, now or self.clock())
        self.logger.info("Unlocked skill %s", skill_id, extra={"user_id": user_id, "skill_id": skill_id})
        return progress

    async def _require_unlocked(self, user_id: str, skill: Skill, now: datetime) -> UserSkillProgress:
        existing = await self.get_progress(user_id, skill.id)
        if existing and existing.is_unlocked:
            return existing
        # No record yet: eligible skills (including those without
        # prerequisites) count as unlocked and get their record now.
        if not await self.resolver.is_unlockable(user_id, skill.id):
            raise SkillLockedError(user_id, skill.id)
        progress, _ = await self._unlock(user_id, skill.id, now)
        return progress

    # ── Recompute ────────────────────────────────────────────────────────

    async def _tally(self, user_id: str, skill_id: str) -> _Tally:
        lessons = await self.repository.list_skill_lessons(skill_id)
        exercises = await self.repository.list_skill_exercises(skill_id)
        completions = await self.store.query(
            Collections.USER_LESSON_COMPLETIONS, where={"user_id": user_id, "skill_id": skill_id}
        )
        passed = await self.store.query(
            Collections.USER_EXERCISE_ATTEMPTS,
            where={"user_id": user_id, "skill_id": skill_id, "is_correct": True},
        )
        active_lessons = {lesson.id for lesson in lessons}
        active_exercises = {exercise.id for exercise in exercises}
        return _Tally(
            lesson_ids={c["lesson_id"] for c in completions} & active_lessons,
            exercise_ids={a["exercise_id"] for a in passed} & active_exercises,
            total=len(active_lessons) + len(active_exercises),
        )

    async def recompute_skill_progress(
        self,
        user_id: str,
        skill: Skill,
        now: Optional[datetime] = None,
        xp_earned: int = 0,
    ) -> ProgressUpdate:
        """
        Rederive mastery_level and fire the mastery transition if due.

        On transition the dependents of the skill are unlocked where eligible
        and every completed item of the skill is scheduled for review.

        Raises:
            NotFoundError: the user has no progress record for the skill.
        """
        now = now or self.clock()
        tally = await self._tally(user_id, skill.id)
        completed = len(tally.lesson_ids) + len(tally.exercise_ids)
        mastery_level = int(100 * completed / tally.total + 0.5) if tally.total else 0
        # A skill without active items has nothing to master.
        reached = tally.total > 0 and mastery_level >= skill.mastery_threshold

        transitioned: List[bool] = []

        def apply(current: Any) -> dict:
            progress = UserSkillProgress.model_validate(current)
            changes = {
                "mastery_level": mastery_level,
                "lessons_completed": len(tally.lesson_ids),
                "exercises_completed": len(tally.exercise_ids),
                "total_xp_earned": progress.total_xp_earned + xp_earned,
                "last_practiced_at": now,
                "is_unlocked": True,
            }
            if reached and not progress.is_mastered:
                transitioned.append(True)
                changes.update(is_mastered=True, mastered_at=now)
            return progress.model_copy(update=changes).to_document()

        key = progress_key(user_id, skill.id)
        try:
            stored = await self.store.update(Collections.USER_SKILL_PROGRESS, key, apply)
        except DocumentMissingError as exc:
            raise NotFoundError("progress", key) from exc
        progress = UserSkillProgress.model_validate(stored)

        update = ProgressUpdate(skill_id=skill.id, progress=progress)
        if not transitioned:
            return update

        self.logger.info(
            "Skill %s mastered at %d%%",
            skill.id,
            mastery_level,
            extra={"user_id": user_id, "skill_id": skill.id},
        )
        update.mastery_achieved = True
        update.newly_unlocked = await self._unlock_dependents(user_id, skill.id, now)
        await self._schedule_reviews(
            user_id,
            skill.id,
            [(ItemType.LESSON, i) for i in sorted(tally.lesson_ids)]
            + [(ItemType.EXERCISE, i) for i in sorted(tally.exercise_ids)],
            now,
        )
        return update

    async def _unlock_dependents(self, user_id: str, skill_id: str, now: datetime) -> List[str]:
        unlocked: List[str] = []
        for dependent in await self.repository.dependents_of(skill_id):
            try:
                eligible = await self.resolver.is_unlockable(user_id, dependent, mastered_override=skill_id)
            except NotFoundError:
                self.logger.warning("Dependency edge %s -> %s points at a missing skill", skill_id, dependent)
                continue
            if not eligible:
                continue
            _, changed = await self._unlock(user_id, dependent, now)
            if changed:
                unlocked.append(dependent)
                self.logger.info(
                    "Unlocked dependent skill %s", dependent, extra={"user_id": user_id, "skill_id": dependent}
                )
        return unlocked

    async def _schedule_reviews(
        self, user_id: str, skill_id: str, items: List[Tuple[ItemType, str]], now: datetime
    ) -> None:
        for item_type, item_id in items:
            await self.scheduler.schedule_item(user_id, item_id, item_type, skill_id=skill_id, now=now)

    # ── Events ───────────────────────────────────────────────────────────

    async def record_lesson_completion(
        self,
        user_id: str,
        lesson_id: str,
        time_spent: int = 0,
        comprehension_score: float = 0,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ProgressUpdate:
        """
        Record a lesson completion.

        A repeat does not create a second completion. It still awards the
        lesson XP if an earlier call failed before granting it, and it
        recomputes progress, so retrying a failed call finishes its work.

        Raises:
            NotFoundError: unknown lesson or skill.
            SkillLockedError: the lesson's skill is locked for the user.
        """
        now = now or self.clock()
        lesson = await self.repository.get_lesson(lesson_id)
        skill = await self.repository.get_skill(lesson.skill_id)
        await self._require_unlocked(user_id, skill, now)

        completion = UserLessonCompletion(
            user_id=user_id,
            lesson_id=lesson.id,
            skill_id=skill.id,
            time_spent=time_spent,
            comprehension_score=comprehension_score,
            notes=notes,
            completed_at=now,
        )
        already_recorded = False
        try:
            await self.store.create(
                Collections.USER_LESSON_COMPLETIONS, completion_key(user_id, lesson.id), completion.to_document()
            )
        except DocumentExistsError:
            self.logger.debug("Lesson %s already completed by %s", lesson.id, user_id)
            already_recorded = True

        award = await self.ledger.award(
            user_id,
            skill.xp_reward,
            f"Completed lesson: {lesson.title}",
            source_type=ItemType.LESSON.value,
            source_id=lesson.id,
            now=now,
            award_key=xp_award_key(user_id, ItemType.LESSON.value, lesson.id),
        )
        update = await self.recompute_skill_progress(user_id, skill, now, xp_earned=award.amount if award else 0)
        if update.progress.is_mastered and not update.mastery_achieved:
            await self._schedule_reviews(user_id, skill.id, [(ItemType.LESSON, lesson.id)], now)
        update.xp_award = award
        update.already_recorded = already_recorded
        return update

    async def record_exercise_attempt(
        self,
        user_id: str,
        exercise_id: str,
        answer: Any,
        time_spent: int = 0,
        now: Optional[datetime] = None,
    ) -> ExerciseSubmission:
        """
        Grade an answer, append the attempt and update progress.

        Only passing attempts count toward mastery. Exercise XP is awarded on
        the first passing attempt.

        Raises:
            NotFoundError: unknown exercise or skill.
            SkillLockedError: the exercise's skill is locked for the user.
            AttemptLimitError: no attempts left.
        """
        now = now or self.clock()
        exercise = await self.repository.get_exercise(exercise_id)
        skill = await self.repository.get_skill(exercise.skill_id)
        await self._require_unlocked(user_id, skill, now)

        attempt = await self.evaluator.submit(user_id, exercise, answer, time_spent=time_spent, now=now)

        award = None
        if attempt.is_correct:
            award = await self.ledger.award(
                user_id,
                exercise.xp_reward,
                f"Passed exercise: {exercise.title}",
                source_type=ItemType.EXERCISE.value,
                source_id=exercise.id,
                now=now,
                award_key=xp_award_key(user_id, ItemType.EXERCISE.value, exercise.id),
            )
        update = await self.recompute_skill_progress(user_id, skill, now, xp_earned=award.amount if award else 0)
        if attempt.is_correct and update.progress.is_mastered and not update.mastery_achieved:
            await self._schedule_reviews(user_id, skill.id, [(ItemType.EXERCISE, exercise.id)], now)
        update.xp_award = award
        return ExerciseSubmission(attempt=attempt, feedback=attempt.feedback, update=update)
