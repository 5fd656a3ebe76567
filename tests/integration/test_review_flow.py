"""Integration tests for ReviewScheduler against the document store."""

from datetime import timedelta

import pytest

from skilltree.engines.progression.errors import NotFoundError
from skilltree.engines.progression.models import ItemType, Skill
from skilltree.engines.progression.review_scheduler import ReviewScheduler


@pytest.fixture
def scheduler(store):
    return ReviewScheduler(store)


class TestScheduling:
    @pytest.mark.asyncio
    async def test_first_review_tomorrow(self, scheduler, now):
        assert await scheduler.schedule_item("u1", "l1", ItemType.LESSON, skill_id="a", now=now) is True
        entry = await scheduler.get_entry("u1", "l1", ItemType.LESSON)
        assert entry.interval == 1
        assert entry.ease_factor == 2.5
        assert entry.repetitions == 0
        assert entry.review_at == now + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_existing_entry_is_kept(self, scheduler, now):
        await scheduler.schedule_item("u1", "l1", ItemType.LESSON, now=now)
        later = now + timedelta(days=5)
        assert await scheduler.schedule_item("u1", "l1", ItemType.LESSON, now=later) is False
        assert (await scheduler.get_entry("u1", "l1", ItemType.LESSON)).review_at == now + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_lesson_and_exercise_with_same_id_are_separate(self, scheduler, now):
        assert await scheduler.schedule_item("u1", "x", ItemType.LESSON, now=now) is True
        assert await scheduler.schedule_item("u1", "x", ItemType.EXERCISE, now=now) is True


class TestRecordReview:
    @pytest.mark.asyncio
    async def test_success_grows_interval(self, scheduler, now):
        await scheduler.schedule_item("u1", "l1", ItemType.LESSON, now=now)
        reviewed_at = now + timedelta(days=1)

        entry = await scheduler.record_review("u1", "l1", ItemType.LESSON, was_correct=True, now=reviewed_at)

        assert entry.interval >= 2
        assert entry.repetitions == 1
        assert entry.ease_factor == 2.6
        assert entry.review_at == reviewed_at + timedelta(days=entry.interval)
        assert entry.last_reviewed_at == reviewed_at

    @pytest.mark.asyncio
    async def test_failure_resets_interval(self, scheduler, now):
        await scheduler.schedule_item("u1", "l1", ItemType.LESSON, now=now)
        for day in (1, 4):
            await scheduler.record_review("u1", "l1", ItemType.LESSON, True, now=now + timedelta(days=day))

        failed_at = now + timedelta(days=12)
        entry = await scheduler.record_review("u1", "l1", ItemType.LESSON, False, now=failed_at)

        assert entry.interval == 1
        assert entry.repetitions == 0
        assert entry.review_at == failed_at + timedelta(days=1)
        assert entry.ease_factor >= 1.3

    @pytest.mark.asyncio
    async def test_missing_entry(self, scheduler, now):
        with pytest.raises(NotFoundError):
            await scheduler.record_review("u1", "ghost", ItemType.LESSON, True, now=now)


class TestDueForReview:
    @pytest.mark.asyncio
    async def test_due_entries_oldest_first(self, scheduler, seed, now):
        await seed(Skill(id="a", category_id="c", name="Argument Basics"))
        await scheduler.schedule_item("u1", "late", ItemType.LESSON, skill_id="a", now=now + timedelta(days=2))
        await scheduler.schedule_item("u1", "early", ItemType.EXERCISE, skill_id="a", now=now)
        await scheduler.schedule_item("u1", "future", ItemType.LESSON, skill_id="a", now=now + timedelta(days=30))
        await scheduler.schedule_item("u2", "other", ItemType.LESSON, now=now)

        due = await scheduler.due_for_review("u1", now + timedelta(days=3))

        assert [d.item_id for d in due] == ["early", "late"]
        assert due[0].item_type == ItemType.EXERCISE
        assert due[0].skill_name == "Argument Basics"

    @pytest.mark.asyncio
    async def test_unknown_skill_leaves_name_empty(self, scheduler, now):
        await scheduler.schedule_item("u1", "l1", ItemType.LESSON, skill_id="gone", now=now)
        due = await scheduler.due_for_review("u1", now + timedelta(days=1))
        assert due[0].skill_id == "gone"
        assert due[0].skill_name is None

    @pytest.mark.asyncio
    async def test_nothing_due(self, scheduler, now):
        await scheduler.schedule_item("u1", "l1", ItemType.LESSON, now=now)
        assert await scheduler.due_for_review("u1", now) == []
