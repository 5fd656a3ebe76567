"""
XP ledger - awards experience points and keeps the profile level consistent.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel

from skilltree.engines.progression.leveling import level_for_xp
from skilltree.engines.progression.models import Collections, UserProfile, XPLogEntry
from skilltree.kernel.store import DocumentExistsError, DocumentStore
from skilltree.logging_config import get_logger


class XPAward(BaseModel):
    """Outcome of one XP award."""

    amount: int
    new_xp: int
    new_level: int
    leveled_up: bool


class XPLedger:
    """
    Adds XP to a user's profile and appends an xp_logs entry. Keyed awards
    (one per lesson, one per exercise) are claimed first, so retries after a
    failure grant the XP exactly once.

    The profile update is a single atomic merge; the level is recomputed
    from the new total inside it.
    """

    def __init__(self, store: DocumentStore, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger or get_logger(__name__)

    async def get_profile(self, user_id: str) -> UserProfile:
        doc = await self.store.get(Collections.PROFILES, user_id)
        if doc is None:
            return UserProfile(user_id=user_id)
        return UserProfile.model_validate(doc)

    async def award(
        self,
        user_id: str,
        amount: int,
        reason: str,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        now: Optional[datetime] = None,
        award_key: Optional[str] = None,
    ) -> Optional[XPAward]:
        """
        Award `amount` XP. Returns None for non-positive amounts.

        With an `award_key` the award happens at most once: the xp_logs entry
        is claimed under that key before the profile changes, and a second
        call with the same key returns None.
        """
        if amount <= 0:
            return None
        now = now or datetime.now(timezone.utc)

        entry = XPLogEntry(
            user_id=user_id,
            amount=amount,
            reason=reason,
            source_type=source_type,
            source_id=source_id,
            created_at=now,
        )
        try:
            await self.store.create(Collections.XP_LOGS, award_key or str(uuid.uuid4()), entry.to_document())
        except DocumentExistsError:
            self.logger.debug("XP award %s already granted", award_key)
            return None

        # Profiles are created lazily; merge=True keeps any fields owned elsewhere.
        existing = await self.store.get(Collections.PROFILES, user_id)
        if existing is None:
            await self.store.set(
                Collections.PROFILES,
                user_id,
                UserProfile(user_id=user_id).to_document(),
                merge=True,
            )

        previous: Dict[str, int] = {}

        def apply(current: Dict[str, Any]) -> Dict[str, Any]:
            old_xp = int(current.get("xp") or 0)
            previous["xp"] = old_xp
            new_xp = old_xp + amount
            return {"xp": new_xp, "level": level_for_xp(new_xp)}

        updated = await self.store.update(Collections.PROFILES, user_id, apply)

        new_xp = int(updated["xp"])
        new_level = int(updated["level"])
        leveled_up = new_level > level_for_xp(previous.get("xp", 0))
        self.logger.info(
            "Awarded %d XP to %s (%s)",
            amount,
            user_id,
            reason,
            extra={"user_id": user_id, "xp": new_xp, "level": new_level},
        )
        return XPAward(amount=amount, new_xp=new_xp, new_level=new_level, leveled_up=leveled_up)
