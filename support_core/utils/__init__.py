"""Shared utilities for Support Core."""

from .embeds import create_embed, ticket_claimed_embed, ticket_closed_embed, ticket_summary_embed
from .error_messages import get_error_message
from .locks import KeyedLock
from .permissions import can_claim_tickets, has_any_role, is_admin_member
from .timestamps import discord_timestamp, from_ms, now_ms

__all__ = [
    "create_embed",
    "ticket_summary_embed",
    "ticket_claimed_embed",
    "ticket_closed_embed",
    "get_error_message",
    "KeyedLock",
    "can_claim_tickets",
    "has_any_role",
    "is_admin_member",
    "discord_timestamp",
    "from_ms",
    "now_ms",
]
