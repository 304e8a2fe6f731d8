"""Core modules for the Support Core Discord bot."""

from .config import Config, LoggingChannels, RoleIDs, TicketCategories, load_config
from .context import SupportContext
from .durations import format_duration, parse_duration
from .errors import (
    ConflictError,
    ExternalApiError,
    InvalidDurationFormat,
    NotFoundError,
    PermissionDeniedError,
    SupportError,
    ValidationError,
)
from .memberships import Membership, MembershipRegistry
from .scheduler import ExpiryScheduler
from .store import KeyValueStore
from .tickets import TicketRegistry, TicketState

__all__ = [
    "Config",
    "LoggingChannels",
    "RoleIDs",
    "TicketCategories",
    "load_config",
    "SupportContext",
    "format_duration",
    "parse_duration",
    "SupportError",
    "ValidationError",
    "InvalidDurationFormat",
    "ConflictError",
    "PermissionDeniedError",
    "NotFoundError",
    "ExternalApiError",
    "Membership",
    "MembershipRegistry",
    "ExpiryScheduler",
    "KeyValueStore",
    "TicketRegistry",
    "TicketState",
]
