"""Process-wide dependencies, built once at startup and handed to each cog."""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import Config
from .memberships import MembershipRegistry
from .scheduler import ExpiryScheduler
from .store import KeyValueStore
from .tickets import TicketRegistry
from .utils.locks import KeyedLock


@dataclass
class SupportContext:
    config: Config
    store: KeyValueStore
    tickets: TicketRegistry
    memberships: MembershipRegistry
    scheduler: ExpiryScheduler = field(default_factory=ExpiryScheduler)
    locks: KeyedLock = field(default_factory=KeyedLock)

    @classmethod
    def build(cls, config: Config, store: KeyValueStore | None = None) -> "SupportContext":
        store = store or KeyValueStore(config.database_path)
        return cls(
            config=config,
            store=store,
            tickets=TicketRegistry(store),
            memberships=MembershipRegistry(store),
        )
