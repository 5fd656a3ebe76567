"""
Dependency Graph Resolver - unlock eligibility and tier partitioning.

compute_tiers is a Kahn topological sort that peels every zero-in-degree
skill off as one tier. Skills that never reach zero in-degree sit on a cycle,
reference a prerequisite that does not exist, or depend on such a skill.
Under TierPolicy.STRICT (the default) that raises DataIntegrityError;
TierPolicy.PERMISSIVE appends them as a final tier and logs a warning.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set

from skilltree.engines.progression.errors import DataIntegrityError
from skilltree.engines.progression.models import Collections, Skill, UserSkillProgress
from skilltree.engines.progression.repository import SkillRepository
from skilltree.kernel.store import DocumentStore
from skilltree.logging_config import get_logger

logger = get_logger(__name__)


class TierPolicy(str, Enum):
    """How compute_tiers treats skills it cannot place."""
    STRICT = "strict"
    PERMISSIVE = "permissive"


def prerequisites_met(prerequisites: Iterable[str], mastered: Set[str]) -> bool:
    """A skill is unlockable when every prerequisite is mastered (vacuously true for none)."""
    return all(p in mastered for p in prerequisites)


def compute_tiers(
    skills: Sequence[Skill],
    policy: TierPolicy = TierPolicy.STRICT,
    log: Optional[logging.Logger] = None,
) -> List[List[Skill]]:
    """
    Partition skills into topological tiers.

    Tier 0 holds skills without prerequisites; every skill in tier N has all
    of its prerequisites in tiers < N. Input order is kept within a tier.

    Raises:
        DataIntegrityError: duplicate ids, or (STRICT) unresolvable skills.
    """
    log = log or logger
    order: Dict[str, int] = {}
    by_id: Dict[str, Skill] = {}
    for index, skill in enumerate(skills):
        if skill.id in by_id:
            raise DataIntegrityError(f"Duplicate skill id {skill.id}", [skill.id])
        by_id[skill.id] = skill
        order[skill.id] = index

    in_degree: Dict[str, int] = {skill_id: 0 for skill_id in by_id}
    dependents: Dict[str, List[str]] = defaultdict(list)
    dangling: Set[str] = set()
    for skill in skills:
        for prereq in set(skill.prerequisites):
            # A dangling edge is counted but never decremented.
            in_degree[skill.id] += 1
            if prereq in by_id:
                dependents[prereq].append(skill.id)
            else:
                dangling.add(skill.id)

    tiers: List[List[Skill]] = []
    current = [skill_id for skill_id in by_id if in_degree[skill_id] == 0]
    while current:
        tiers.append([by_id[skill_id] for skill_id in current])
        ready: List[str] = []
        for skill_id in current:
            for dependent in dependents[skill_id]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)
        current = sorted(ready, key=order.__getitem__)

    unresolved = [skill_id for skill_id in by_id if in_degree[skill_id] > 0]
    if not unresolved:
        return tiers

    message = (
        f"{len(unresolved)} skill(s) cannot be placed in a tier: {', '.join(unresolved)}"
        + (f" (dangling prerequisites on {', '.join(sorted(dangling))})" if dangling else "")
    )
    if policy == TierPolicy.STRICT:
        raise DataIntegrityError(message, unresolved)

    log.warning("Appending unresolved skills as a final tier: %s", message, extra={"skill_ids": unresolved})
    tiers.append([by_id[skill_id] for skill_id in unresolved])
    return tiers


class DependencyResolver:
    """
    Store-backed unlock checks.

    Every check reads the user's mastered set with one query and evaluates
    the graph in memory.
    """

    def __init__(
        self,
        store: DocumentStore,
        repository: Optional[SkillRepository] = None,
        tier_policy: TierPolicy = TierPolicy.STRICT,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.repository = repository or SkillRepository(store)
        self.tier_policy = TierPolicy(tier_policy)
        self.logger = logger or get_logger(__name__)

    async def _progress_for(self, user_id: str, skill_ids: Optional[List[str]] = None) -> List[UserSkillProgress]:
        where: Dict[str, object] = {"user_id": user_id}
        if skill_ids is not None:
            where["skill_id"] = skill_ids
        docs = await self.store.query(Collections.USER_SKILL_PROGRESS, where=where)
        return [UserSkillProgress.model_validate(d) for d in docs]

    async def mastered_skill_ids(self, user_id: str) -> Set[str]:
        return {p.skill_id for p in await self._progress_for(user_id) if p.is_mastered}

    async def is_unlockable(
        self,
        user_id: str,
        skill_id: str,
        mastered_override: Optional[str] = None,
    ) -> bool:
        """
        Whether every prerequisite of `skill_id` is mastered by the user.

        `mastered_override` is counted as mastered even if its progress
        record has not been written yet.
        """
        skill = await self.repository.get_skill(skill_id)
        if not skill.prerequisites:
            return True
        progress = await self._progress_for(user_id, skill.prerequisites)
        mastered = {p.skill_id for p in progress if p.is_mastered}
        if mastered_override:
            mastered.add(mastered_override)
        return prerequisites_met(skill.prerequisites, mastered)

    async def unlocked_skill_ids(self, user_id: str) -> Set[str]:
        """
        Every skill the user may work on: those with an unlocked progress
        record plus those whose prerequisites are all mastered (including
        every skill without prerequisites).
        """
        skills = await self.repository.list_skills(active_only=True)
        progress = await self._progress_for(user_id)
        mastered = {p.skill_id for p in progress if p.is_mastered}
        unlocked = {p.skill_id for p in progress if p.is_unlocked}
        unlocked.update(s.id for s in skills if prerequisites_met(s.prerequisites, mastered))
        return unlocked

    async def compute_tiers(self, policy: Optional[TierPolicy] = None) -> List[List[Skill]]:
        """Tiers over all active skills in the catalogue."""
        skills = await self.repository.list_skills(active_only=True)
        return compute_tiers(skills, policy or self.tier_policy, log=self.logger)
