"""Ticket registry: open tickets per user, claimants per channel, escalations."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from .constants import ACTIVE_TICKETS_KEY, CLAIMED_TICKETS_KEY, ESCALATED_TICKETS_KEY
from .errors import ConflictError, NotFoundError, PermissionDeniedError
from .store import KeyValueStore
from .utils.error_messages import get_error_message

logger = logging.getLogger(__name__)


class TicketState(str, Enum):
    OPEN_UNCLAIMED = "open_unclaimed"
    CLAIMED = "claimed"
    ESCALATED = "escalated"
    CLOSED = "closed"


def _load_id_map(payload: Any, label: str) -> dict[int, int]:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        logger.warning("Stored %s is not a mapping; treating as empty", label)
        return {}
    mapping: dict[int, int] = {}
    for key, value in payload.items():
        try:
            mapping[int(key)] = int(value)
        except (TypeError, ValueError):
            logger.warning("Skipping malformed %s entry %r -> %r", label, key, value)
    return mapping


def _load_id_set(payload: Any, label: str) -> set[int]:
    if payload is None:
        return set()
    if not isinstance(payload, list):
        logger.warning("Stored %s is not a list; treating as empty", label)
        return set()
    ids: set[int] = set()
    for value in payload:
        try:
            ids.add(int(value))
        except (TypeError, ValueError):
            logger.warning("Skipping malformed %s entry %r", label, value)
    return ids


class TicketRegistry:
    """
    In-memory cache of ticket state with write-through persistence.

    ``active_tickets`` maps user id to channel id, ``claimed_tickets`` maps
    channel id to claimant id and ``escalated_tickets`` holds channel ids
    that requested more support. All three are written together on every
    mutation. Call :meth:`load` once before use.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self.active_tickets: dict[int, int] = {}
        self.claimed_tickets: dict[int, int] = {}
        self.escalated_tickets: set[int] = set()

    async def load(self) -> None:
        self.active_tickets = _load_id_map(await self.store.get(ACTIVE_TICKETS_KEY), "activeTickets")
        self.claimed_tickets = _load_id_map(await self.store.get(CLAIMED_TICKETS_KEY), "claimedTickets")
        self.escalated_tickets = _load_id_set(await self.store.get(ESCALATED_TICKETS_KEY), "escalatedTickets")
        logger.info(
            "Loaded ticket registry: %s active, %s claimed, %s escalated",
            len(self.active_tickets),
            len(self.claimed_tickets),
            len(self.escalated_tickets),
        )

    async def save(self) -> None:
        await self.store.set_many(
            [
                (ACTIVE_TICKETS_KEY, {str(user_id): channel_id for user_id, channel_id in self.active_tickets.items()}),
                (CLAIMED_TICKETS_KEY, {str(channel_id): claimer for channel_id, claimer in self.claimed_tickets.items()}),
                (ESCALATED_TICKETS_KEY, sorted(self.escalated_tickets)),
            ]
        )

    def _snapshot(self) -> tuple[dict[int, int], dict[int, int], set[int]]:
        return dict(self.active_tickets), dict(self.claimed_tickets), set(self.escalated_tickets)

    async def _persist(self, snapshot: tuple[dict[int, int], dict[int, int], set[int]]) -> None:
        """Write through, restoring ``snapshot`` if the store rejects the write."""
        try:
            await self.save()
        except Exception:
            self.active_tickets, self.claimed_tickets, self.escalated_tickets = snapshot
            logger.error("Failed to persist ticket registry; in-memory state rolled back", exc_info=True)
            raise

    def has_active(self, user_id: int) -> bool:
        return user_id in self.active_tickets

    def channel_for(self, user_id: int) -> int | None:
        return self.active_tickets.get(user_id)

    def owner_of(self, channel_id: int) -> int | None:
        for user_id, ticket_channel_id in self.active_tickets.items():
            if ticket_channel_id == channel_id:
                return user_id
        return None

    def is_ticket(self, channel_id: int) -> bool:
        return self.owner_of(channel_id) is not None

    def claimant_of(self, channel_id: int) -> int | None:
        return self.claimed_tickets.get(channel_id)

    def state_of(self, channel_id: int) -> TicketState:
        if not self.is_ticket(channel_id):
            return TicketState.CLOSED
        if channel_id in self.escalated_tickets:
            return TicketState.ESCALATED
        if channel_id in self.claimed_tickets:
            return TicketState.CLAIMED
        return TicketState.OPEN_UNCLAIMED

    def ensure_can_open(self, user_id: int) -> None:
        channel_id = self.channel_for(user_id)
        if channel_id is not None:
            raise ConflictError(get_error_message("duplicate_ticket", channel_id=channel_id))

    async def open(self, user_id: int, channel_id: int) -> None:
        self.ensure_can_open(user_id)
        snapshot = self._snapshot()
        self.active_tickets[user_id] = channel_id
        await self._persist(snapshot)
        logger.info("Registered ticket channel %s for user %s", channel_id, user_id)

    async def claim(self, channel_id: int, actor_id: int) -> TicketState:
        """
        Apply a claim press by ``actor_id``.

        Returns ``CLAIMED`` for a first claim and ``ESCALATED`` when the
        current claimant presses again. The claimant never changes.
        """
        state = self.state_of(channel_id)
        if state is TicketState.CLOSED:
            raise NotFoundError(get_error_message("not_a_ticket"))

        claimant = self.claimant_of(channel_id)
        if claimant is not None and claimant != actor_id:
            raise ConflictError(get_error_message("already_claimed", claimant_id=claimant))
        if state is TicketState.ESCALATED:
            raise ConflictError(get_error_message("already_escalated"))

        snapshot = self._snapshot()
        if state is TicketState.OPEN_UNCLAIMED:
            self.claimed_tickets[channel_id] = actor_id
            await self._persist(snapshot)
            logger.info("Ticket channel %s claimed by %s", channel_id, actor_id)
            return TicketState.CLAIMED

        self.escalated_tickets.add(channel_id)
        await self._persist(snapshot)
        logger.info("Ticket channel %s escalated by %s", channel_id, actor_id)
        return TicketState.ESCALATED

    async def unescalate(self, channel_id: int) -> bool:
        """Return an escalated ticket to CLAIMED so the claimant can request support again."""
        if channel_id not in self.escalated_tickets:
            return False
        snapshot = self._snapshot()
        self.escalated_tickets.discard(channel_id)
        await self._persist(snapshot)
        logger.info("Ticket channel %s returned to claimed", channel_id)
        return True

    def ensure_can_close(self, channel_id: int, actor_id: int) -> None:
        if not self.is_ticket(channel_id):
            raise NotFoundError(get_error_message("not_a_ticket"))
        if self.claimant_of(channel_id) != actor_id:
            raise PermissionDeniedError(get_error_message("close_not_allowed"))

    async def close(self, channel_id: int, actor_id: int) -> int | None:
        """Remove exactly this channel's entries. Returns the ticket owner's id."""
        self.ensure_can_close(channel_id, actor_id)
        snapshot = self._snapshot()
        owner_id = self._drop_channel(channel_id)
        await self._persist(snapshot)
        logger.info("Ticket channel %s closed by %s", channel_id, actor_id)
        return owner_id

    async def forget_channel(self, channel_id: int) -> bool:
        """Drop entries for a channel that disappeared without being closed."""
        tracked = (
            self.is_ticket(channel_id)
            or channel_id in self.claimed_tickets
            or channel_id in self.escalated_tickets
        )
        if not tracked:
            return False
        snapshot = self._snapshot()
        self._drop_channel(channel_id)
        await self._persist(snapshot)
        logger.info("Forgot ticket channel %s", channel_id)
        return True

    def _drop_channel(self, channel_id: int) -> int | None:
        owner_id = self.owner_of(channel_id)
        for user_id in [uid for uid, cid in self.active_tickets.items() if cid == channel_id]:
            del self.active_tickets[user_id]
        self.claimed_tickets.pop(channel_id, None)
        self.escalated_tickets.discard(channel_id)
        return owner_id
