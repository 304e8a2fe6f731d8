"""Configuration management for Support Core."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

CONFIG_PATH = Path("config.json")
DEFAULT_DATABASE_PATH = "support_core.db"


@dataclass(frozen=True)
class RoleIDs:
    admin: int
    support: int
    senior_staff: int
    founder: int
    staff: int | None = None

    @property
    def support_roles(self) -> tuple[int, ...]:
        """Base support tier: sees new tickets, loses access on escalation."""
        return tuple(role_id for role_id in (self.support, self.staff) if role_id)

    @property
    def elevated_roles(self) -> tuple[int, ...]:
        """Roles pinged and granted access when a ticket is escalated."""
        return (self.senior_staff, self.founder)

    @property
    def claim_roles(self) -> tuple[int, ...]:
        return (self.admin, *self.support_roles, *self.elevated_roles)


@dataclass(frozen=True)
class TicketCategories:
    support: int


@dataclass(frozen=True)
class LoggingChannels:
    tickets: int
    memberships: int
    errors: int
    audit: int | None = None


@dataclass
class Config:
    token: str
    guild_ids: list[int]
    role_ids: RoleIDs
    ticket_categories: TicketCategories
    logging_channels: LoggingChannels
    bot_prefix: str = "!"
    database_path: str = DEFAULT_DATABASE_PATH


def _coerce_id(value: Any, *, field_name: str) -> int:
    try:
        snowflake = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be an integer ID (got {value!r})") from exc
    if snowflake <= 0:
        raise ValueError(f"{field_name} must be a positive integer ID (got {snowflake})")
    return snowflake


def _coerce_optional_id(value: Any, *, field_name: str) -> int | None:
    if value in (None, "", 0):
        return None
    return _coerce_id(value, field_name=field_name)


def _require_section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if not isinstance(section, dict):
        raise ValueError(f"{name} must be an object")
    return section


def _parse_role_ids(payload: dict[str, Any]) -> RoleIDs:
    return RoleIDs(
        admin=_coerce_id(payload.get("admin"), field_name="role_ids.admin"),
        support=_coerce_id(payload.get("support"), field_name="role_ids.support"),
        senior_staff=_coerce_id(payload.get("senior_staff"), field_name="role_ids.senior_staff"),
        founder=_coerce_id(payload.get("founder"), field_name="role_ids.founder"),
        staff=_coerce_optional_id(payload.get("staff"), field_name="role_ids.staff"),
    )


def _parse_ticket_categories(payload: dict[str, Any]) -> TicketCategories:
    return TicketCategories(
        support=_coerce_id(payload.get("support"), field_name="ticket_categories.support"),
    )


def _parse_logging_channels(payload: dict[str, Any]) -> LoggingChannels:
    return LoggingChannels(
        tickets=_coerce_id(payload.get("tickets"), field_name="logging_channels.tickets"),
        memberships=_coerce_id(payload.get("memberships"), field_name="logging_channels.memberships"),
        errors=_coerce_id(payload.get("errors"), field_name="logging_channels.errors"),
        audit=_coerce_optional_id(payload.get("audit"), field_name="logging_channels.audit"),
    )


def load_config(config_path: str | Path = CONFIG_PATH) -> Config:
    """Load and parse configuration from JSON file."""
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            "Please copy config.example.json to config.json and fill in your values."
        )

    with path.open("r", encoding="utf-8") as file:
        data: dict[str, Any] = json.load(file)

    guild_ids = data.get("guild_ids", [])
    if not isinstance(guild_ids, list):
        raise ValueError("guild_ids must be a list of integer IDs")

    return Config(
        token=str(data.get("token", "")),
        guild_ids=[_coerce_id(gid, field_name="guild_ids") for gid in guild_ids],
        role_ids=_parse_role_ids(_require_section(data, "role_ids")),
        ticket_categories=_parse_ticket_categories(_require_section(data, "ticket_categories")),
        logging_channels=_parse_logging_channels(_require_section(data, "logging_channels")),
        bot_prefix=data.get("bot_prefix", "!"),
        database_path=str(data.get("database_path", DEFAULT_DATABASE_PATH)),
    )
