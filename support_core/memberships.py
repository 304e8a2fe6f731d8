"""Persisted registry of time-limited role grants."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional

from .constants import MEMBERSHIPS_KEY
from .store import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Membership:
    user_id: int
    guild_id: int
    role_id: int
    expires_at: Optional[int] = None  # epoch ms, None = permanent

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.guild_id, self.user_id, self.role_id)

    @property
    def is_permanent(self) -> bool:
        return self.expires_at is None

    def is_due(self, now_ms: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now_ms

    def remaining_ms(self, now_ms: int) -> int:
        if self.expires_at is None:
            raise ValueError("Permanent memberships do not expire")
        return max(0, self.expires_at - now_ms)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Membership":
        expires_at = payload.get("expires_at")
        return cls(
            user_id=int(payload["user_id"]),
            guild_id=int(payload["guild_id"]),
            role_id=int(payload["role_id"]),
            expires_at=int(expires_at) if expires_at is not None else None,
        )


class MembershipRegistry:
    """
    Read-modify-write access to the persisted membership list.

    Every mutation reloads the full list from the store and writes it back
    under a single key. Callers serialize mutations for the same
    ``(guild, user, role)`` through the context's keyed lock.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def load(self) -> list[Membership]:
        payload = await self.store.get(MEMBERSHIPS_KEY)
        if payload is None:
            return []
        if not isinstance(payload, list):
            logger.warning("Stored memberships are not a list (%s); treating as empty", type(payload).__name__)
            return []

        memberships: list[Membership] = []
        for item in payload:
            try:
                memberships.append(Membership.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping malformed membership record %r: %s", item, e)
        return memberships

    async def save(self, memberships: list[Membership]) -> None:
        await self.store.set(MEMBERSHIPS_KEY, [membership.to_dict() for membership in memberships])

    async def add(self, membership: Membership) -> None:
        """Persist ``membership``, replacing any record for the same guild, user and role."""
        memberships = [m for m in await self.load() if m.key != membership.key]
        memberships.append(membership)
        await self.save(memberships)
        logger.info(
            "Persisted membership for user %s role %s (expires_at=%s)",
            membership.user_id,
            membership.role_id,
            membership.expires_at,
        )

    async def remove(self, user_id: int, role_id: int, guild_id: Optional[int] = None) -> int:
        """Delete matching records. Removing a missing pair is a no-op. Returns the count removed."""
        memberships = await self.load()
        kept = [
            m
            for m in memberships
            if not (
                m.user_id == user_id
                and m.role_id == role_id
                and (guild_id is None or m.guild_id == guild_id)
            )
        ]
        removed = len(memberships) - len(kept)
        if removed:
            await self.save(kept)
            logger.info("Removed %s membership record(s) for user %s role %s", removed, user_id, role_id)
        return removed

    async def get(self, guild_id: int, user_id: int, role_id: int) -> Membership | None:
        for membership in await self.load():
            if membership.key == (guild_id, user_id, role_id):
                return membership
        return None

    async def partition(self, now_ms: int) -> tuple[list[Membership], list[Membership]]:
        """Split time-limited records into ``(due, pending)`` relative to ``now_ms``."""
        due: list[Membership] = []
        pending: list[Membership] = []
        for membership in await self.load():
            if membership.is_permanent:
                continue
            if membership.is_due(now_ms):
                due.append(membership)
            else:
                pending.append(membership)
        return due, pending
