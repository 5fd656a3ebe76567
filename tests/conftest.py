"""
Pytest fixtures for Skill Progression Engine tests.

Integration and system tests run against a real SqlDocumentStore on a
temporary SQLite file; the text generator is a scripted fake.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Union

import pytest
import pytest_asyncio

from skilltree.ai.text_generation import DEFAULT_SYSTEM_PROMPT, GenerationError
from skilltree.database import create_engine_for_url, create_session_maker, init_db
from skilltree.engines.progression.models import (
    Collections,
    Exercise,
    Lesson,
    Skill,
    SkillCategory,
    SkillDependency,
    UserLearningGoals,
)
from skilltree.kernel.store import SqlDocumentStore

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class ScriptedGenerator:
    """
    TextGenerator fake that replays queued replies.

    A queued exception is raised instead of returned. Running out of replies
    raises GenerationError, as an unreachable service would.
    """

    def __init__(self):
        self.replies: List[Union[str, Exception]] = []
        self.prompts: List[str] = []
        self.system_prompts: List[str] = []

    def queue(self, *replies: Union[str, Exception]) -> "ScriptedGenerator":
        self.replies.extend(replies)
        return self

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> str:
        self.prompts.append(prompt)
        self.system_prompts.append(system_prompt)
        if not self.replies:
            raise GenerationError("No scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest_asyncio.fixture
async def store(tmp_path):
    """SqlDocumentStore on a fresh SQLite file (all connections share it)."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'skilltree_test.db'}")
    await init_db(bind=engine)
    yield SqlDocumentStore(create_session_maker(engine))
    await engine.dispose()


_COLLECTION_FOR = {
    SkillCategory: Collections.SKILL_CATEGORIES,
    Skill: Collections.SKILLS,
    Lesson: Collections.LESSONS,
    Exercise: Collections.EXERCISES,
    SkillDependency: Collections.SKILL_DEPENDENCIES,
    UserLearningGoals: Collections.USER_LEARNING_GOALS,
}


def _key_for(doc: Any) -> str:
    if isinstance(doc, SkillDependency):
        return f"{doc.from_skill_id}_{doc.to_skill_id}"
    if isinstance(doc, UserLearningGoals):
        return doc.user_id
    return doc.id


@pytest.fixture
def seed(store) -> Callable[..., Awaitable[None]]:
    """Write catalogue models into their collections."""

    async def _seed(*docs: Any) -> None:
        for doc in docs:
            await store.set(_COLLECTION_FOR[type(doc)], _key_for(doc), doc.to_document())

    return _seed


@pytest.fixture
def skill_a_b() -> List[Any]:
    """
    Skill A: no prerequisites, two lessons and one MCQ exercise, threshold 90.
    Skill B: requires A, one lesson.
    """
    return [
        SkillCategory(id="logic", name="Logic", display_order=1),
        Skill(id="a", category_id="logic", name="Argument Basics", xp_reward=100, mastery_threshold=90),
        Skill(
            id="b",
            category_id="logic",
            name="Rebuttals",
            difficulty_level="intermediate",
            xp_reward=150,
            display_order=1,
            prerequisites=["a"],
        ),
        Lesson(id="a1", skill_id="a", title="Claims", content="# Claims\nA claim is a statement.", display_order=0),
        Lesson(id="a2", skill_id="a", title="Evidence", content="Evidence supports claims.", display_order=1),
        Exercise(
            id="ax",
            lesson_id="a2",
            skill_id="a",
            title="Capital city",
            type="mcq",
            content={"question": "Capital of France?", "options": ["Paris", "Lyon"]},
            correct_answer="Paris",
            xp_reward=50,
        ),
        Lesson(id="b1", skill_id="b", title="Counterpoints", content="Answer the strongest version."),
    ]
