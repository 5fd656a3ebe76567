"""
Skill repository - typed, batched reads of the skill catalogue.

Prerequisite edges live in `skill_dependencies`; they are attached to
skills with one query per call instead of one per skill.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set

from skilltree.engines.progression.errors import NotFoundError
from skilltree.engines.progression.models import (
    Collections,
    Exercise,
    Lesson,
    Skill,
    SkillCategory,
    SkillCategoryTree,
    SkillDependency,
    UserLearningGoals,
)
from skilltree.kernel.store import DocumentMissingError, DocumentStore


def _by_display_order(doc: Any) -> tuple:
    return (doc.display_order, doc.id)


class SkillRepository:
    """Read access to categories, skills, lessons, exercises and edges."""

    def __init__(self, store: DocumentStore):
        self.store = store

    # ── Dependency edges ─────────────────────────────────────────────────

    async def list_dependencies(self) -> List[SkillDependency]:
        docs = await self.store.query(Collections.SKILL_DEPENDENCIES)
        return [SkillDependency.model_validate(d) for d in docs]

    async def dependents_of(self, skill_id: str) -> List[str]:
        """Skills that list `skill_id` as a prerequisite."""
        dependents: Set[str] = set()
        docs = await self.store.query(Collections.SKILL_DEPENDENCIES, where={"from_skill_id": skill_id})
        dependents.update(d["to_skill_id"] for d in docs)
        for skill in await self.store.query(Collections.SKILLS):
            if skill_id in (skill.get("prerequisites") or []):
                dependents.add(skill["id"])
        return sorted(dependents)

    # ── Skills and categories ────────────────────────────────────────────

    def _attach_prerequisites(self, skill_docs: Iterable[Dict[str, Any]], edges: List[SkillDependency]) -> List[Skill]:
        incoming: Dict[str, Set[str]] = defaultdict(set)
        for edge in edges:
            incoming[edge.to_skill_id].add(edge.from_skill_id)
        skills = []
        for doc in skill_docs:
            skill = Skill.model_validate(doc)
            merged = set(skill.prerequisites) | incoming.get(skill.id, set())
            skills.append(skill.model_copy(update={"prerequisites": sorted(merged)}))
        return skills

    async def list_skills(self, active_only: bool = True) -> List[Skill]:
        where = {"is_active": True} if active_only else None
        docs = await self.store.query(Collections.SKILLS, where=where)
        skills = self._attach_prerequisites(docs, await self.list_dependencies())
        return sorted(skills, key=_by_display_order)

    async def get_skill(self, skill_id: str) -> Skill:
        doc = await self.store.get(Collections.SKILLS, skill_id)
        if doc is None:
            raise NotFoundError("skill", skill_id)
        edges = await self.store.query(Collections.SKILL_DEPENDENCIES, where={"to_skill_id": skill_id})
        return self._attach_prerequisites([doc], [SkillDependency.model_validate(e) for e in edges])[0]

    async def get_skills(self, skill_ids: Iterable[str]) -> Dict[str, Skill]:
        """Batch lookup without prerequisites; missing ids are omitted."""
        docs = await self.store.get_many(Collections.SKILLS, skill_ids)
        return {key: Skill.model_validate(doc) for key, doc in docs.items()}

    async def get_skill_tree(self) -> List[SkillCategoryTree]:
        """Active categories with their active skills, both in display order."""
        categories = [
            SkillCategory.model_validate(d)
            for d in await self.store.query(Collections.SKILL_CATEGORIES, where={"is_active": True})
        ]
        by_category: Dict[str, List[Skill]] = defaultdict(list)
        for skill in await self.list_skills(active_only=True):
            by_category[skill.category_id].append(skill)
        return [
            SkillCategoryTree(**category.model_dump(), skills=by_category.get(category.id, []))
            for category in sorted(categories, key=_by_display_order)
        ]

    # ── Lessons and exercises ────────────────────────────────────────────

    async def get_lesson(self, lesson_id: str) -> Lesson:
        doc = await self.store.get(Collections.LESSONS, lesson_id)
        if doc is None:
            raise NotFoundError("lesson", lesson_id)
        return Lesson.model_validate(doc)

    async def list_skill_lessons(self, skill_id: str, active_only: bool = True) -> List[Lesson]:
        where: Dict[str, Any] = {"skill_id": skill_id}
        if active_only:
            where["is_active"] = True
        docs = await self.store.query(Collections.LESSONS, where=where)
        return sorted((Lesson.model_validate(d) for d in docs), key=_by_display_order)

    async def get_exercise(self, exercise_id: str) -> Exercise:
        doc = await self.store.get(Collections.EXERCISES, exercise_id)
        if doc is None:
            raise NotFoundError("exercise", exercise_id)
        return Exercise.model_validate(doc)

    async def list_skill_exercises(self, skill_id: str, active_only: bool = True) -> List[Exercise]:
        where: Dict[str, Any] = {"skill_id": skill_id}
        if active_only:
            where["is_active"] = True
        docs = await self.store.query(Collections.EXERCISES, where=where)
        return sorted((Exercise.model_validate(d) for d in docs), key=_by_display_order)

    async def save_lesson_content(self, lesson_id: str, content: List[Dict[str, Any]]) -> None:
        try:
            await self.store.update(Collections.LESSONS, lesson_id, {"content": content})
        except DocumentMissingError as exc:
            raise NotFoundError("lesson", lesson_id) from exc

    # ── Learner goals ────────────────────────────────────────────────────

    async def get_learning_goals(self, user_id: str) -> Optional[UserLearningGoals]:
        doc = await self.store.get(Collections.USER_LEARNING_GOALS, user_id)
        return UserLearningGoals.model_validate(doc) if doc else None
