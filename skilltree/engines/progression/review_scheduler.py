"""
Review Scheduler - spaced review of mastered lessons and exercises.

An SM-2 variant with a binary outcome: a successful review is graded 5 and
a failed one 2, giving the ease-factor deltas +0.10 and -0.32
(EF' = EF + 0.1 - (5 - q) * (0.08 + (5 - q) * 0.02), floored at 1.3).

Intervals always grow on success, max(interval + 1, round(interval * EF)),
and reset to one day on failure.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel

from skilltree.engines.progression.errors import NotFoundError
from skilltree.engines.progression.models import Collections, ItemType, UserReviewSchedule, schedule_key
from skilltree.engines.progression.repository import SkillRepository
from skilltree.kernel.store import DocumentExistsError, DocumentMissingError, DocumentStore
from skilltree.logging_config import get_logger

INITIAL_EASE = 2.5
MIN_EASE = 1.3
FIRST_INTERVAL_DAYS = 1
SUCCESS_GRADE = 5
FAILURE_GRADE = 2


def _aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def next_ease(ease_factor: float, grade: int) -> float:
    delta = 0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02)
    return round(max(MIN_EASE, ease_factor + delta), 2)


def next_interval(interval: int, ease_factor: float, was_correct: bool) -> int:
    if not was_correct:
        return FIRST_INTERVAL_DAYS
    return max(interval + 1, _round_half_up(interval * ease_factor))


def apply_review(entry: UserReviewSchedule, was_correct: bool, now: datetime) -> UserReviewSchedule:
    """Pure state transition for one review."""
    now = _aware(now)
    interval = next_interval(entry.interval, entry.ease_factor, was_correct)
    return entry.model_copy(
        update={
            "interval": interval,
            "ease_factor": next_ease(entry.ease_factor, SUCCESS_GRADE if was_correct else FAILURE_GRADE),
            "repetitions": entry.repetitions + 1 if was_correct else 0,
            "review_at": now + timedelta(days=interval),
            "last_reviewed_at": now,
        }
    )


class DueReview(BaseModel):
    """A schedule entry that is due, with its owning skill resolved."""

    item_id: str
    item_type: ItemType
    skill_id: Optional[str] = None
    skill_name: Optional[str] = None
    review_at: datetime
    interval: int
    ease_factor: float
    repetitions: int


class ReviewScheduler:
    """Creates, advances and lists review schedule entries."""

    def __init__(
        self,
        store: DocumentStore,
        repository: Optional[SkillRepository] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.repository = repository or SkillRepository(store)
        self.logger = logger or get_logger(__name__)

    async def schedule_item(
        self,
        user_id: str,
        item_id: str,
        item_type: ItemType,
        skill_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Create the entry if absent. Returns False when one already exists."""
        now = _aware(now or datetime.now(timezone.utc))
        entry = UserReviewSchedule(
            user_id=user_id,
            item_id=item_id,
            item_type=item_type,
            skill_id=skill_id,
            review_at=now + timedelta(days=FIRST_INTERVAL_DAYS),
            ease_factor=INITIAL_EASE,
            interval=FIRST_INTERVAL_DAYS,
            repetitions=0,
        )
        try:
            await self.store.create(
                Collections.USER_REVIEW_SCHEDULE,
                schedule_key(user_id, item_type, item_id),
                entry.to_document(),
            )
        except DocumentExistsError:
            return False
        self.logger.debug("Scheduled %s %s for review", ItemType(item_type).value, item_id)
        return True

    async def get_entry(self, user_id: str, item_id: str, item_type: ItemType) -> UserReviewSchedule:
        key = schedule_key(user_id, item_type, item_id)
        doc = await self.store.get(Collections.USER_REVIEW_SCHEDULE, key)
        if doc is None:
            raise NotFoundError("review entry", key)
        return UserReviewSchedule.model_validate(doc)

    async def record_review(
        self,
        user_id: str,
        item_id: str,
        item_type: ItemType,
        was_correct: bool,
        now: Optional[datetime] = None,
    ) -> UserReviewSchedule:
        """
        Apply one review outcome atomically.

        Raises:
            NotFoundError: no schedule entry exists for the item.
        """
        now = now or datetime.now(timezone.utc)
        key = schedule_key(user_id, item_type, item_id)

        def advance(current):
            return apply_review(UserReviewSchedule.model_validate(current), was_correct, now).to_document()

        try:
            stored = await self.store.update(Collections.USER_REVIEW_SCHEDULE, key, advance)
        except DocumentMissingError as exc:
            raise NotFoundError("review entry", key) from exc

        entry = UserReviewSchedule.model_validate(stored)
        self.logger.info(
            "Review of %s %s %s; next in %d day(s)",
            entry.item_type.value,
            item_id,
            "passed" if was_correct else "failed",
            entry.interval,
            extra={"user_id": user_id},
        )
        return entry

    async def due_for_review(self, user_id: str, now: Optional[datetime] = None) -> List[DueReview]:
        """Entries with review_at <= now, oldest first."""
        now = _aware(now or datetime.now(timezone.utc))
        docs = await self.store.query(Collections.USER_REVIEW_SCHEDULE, where={"user_id": user_id})
        entries = [UserReviewSchedule.model_validate(d) for d in docs]
        due = sorted((e for e in entries if _aware(e.review_at) <= now), key=lambda e: _aware(e.review_at))
        if not due:
            return []

        skills = await self.repository.get_skills({e.skill_id for e in due if e.skill_id})
        return [
            DueReview(
                item_id=e.item_id,
                item_type=e.item_type,
                skill_id=e.skill_id,
                skill_name=skills[e.skill_id].name if e.skill_id in skills else None,
                review_at=e.review_at,
                interval=e.interval,
                ease_factor=e.ease_factor,
                repetitions=e.repetitions,
            )
            for e in due
        ]
