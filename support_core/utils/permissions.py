"""Permission checking utilities for role-based access control."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import discord

    from ..config import Config


def has_any_role(member: discord.Member | None, role_ids: tuple[int, ...]) -> bool:
    if member is None:
        return False
    wanted = {role_id for role_id in role_ids if role_id}
    return any(role.id in wanted for role in getattr(member, "roles", []))


def is_admin_member(member: discord.Member | None, config: Config) -> bool:
    """
    Check if a Discord member has the configured admin role.

    Args:
        member: Discord member to check (None if not in guild)
        config: Bot configuration containing role IDs

    Returns:
        True if member has admin role, False otherwise
    """
    return has_any_role(member, (config.role_ids.admin,))


def can_claim_tickets(member: discord.Member | None, config: Config) -> bool:
    """Support, staff, senior staff, founders and admins may claim tickets."""
    return has_any_role(member, config.role_ids.claim_roles)
