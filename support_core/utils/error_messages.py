"""Standardized user-facing messages for consistent replies."""

from __future__ import annotations

from typing import Any


def get_error_message(error_type: str, **kwargs: Any) -> str:
    """
    Get formatted error message with variables.

    Args:
        error_type: Type of error (key from ERROR_MESSAGES)
        **kwargs: Variables to format into the message

    Returns:
        Formatted error message string
    """
    message_template = ERROR_MESSAGES.get(error_type, "❌ An error occurred. Please try again later.")

    try:
        return message_template.format(**kwargs)
    except KeyError:
        return f"❌ {error_type.replace('_', ' ').title()} error occurred."


ERROR_MESSAGES = {
    "guild_only": "❌ This command must be used in a server.",

    "duplicate_ticket": (
        "❌ **You already have an active ticket!**\n\n"
        "• Your ticket: <#{channel_id}>\n"
        "• Please continue the conversation there"
    ),

    "not_a_ticket": "❌ This channel is not an active ticket.",

    "ticket_category_missing": "❌ Ticket category not found. Please contact an administrator.",

    "ticket_form_timeout": "⏰ Ticket creation timed out. Run `/ticket` again when you are ready.",

    "ticket_create_failed": "❌ Failed to create ticket. Please try again.",

    "claim_not_allowed": (
        "🚫 **Permission Denied**\n\n"
        "Only support staff can claim tickets."
    ),

    "already_claimed": "❌ This ticket has already been claimed by <@{claimant_id}>.",

    "already_escalated": "❌ More support has already been requested for this ticket.",

    "close_not_allowed": (
        "🚫 **Permission Denied**\n\n"
        "Only the staff member who claimed this ticket can close it."
    ),

    "invalid_duration": (
        "❌ **Invalid Duration**\n\n"
        "`{duration}` is not a valid duration.\n"
        "• Use a number followed by one unit: `30m`, `12h`, `7d`, `45s`\n"
        "• Use `perm` for a permanent membership"
    ),

    "invalid_membership_target": "❌ Invalid user, role, or duration.",

    "role_already_held": "❌ {member} already has this role.",

    "role_not_held": "❌ {member} does not have this role.",

    "role_assign_failed": "❌ Failed to assign the role.",

    "role_remove_failed": "❌ Failed to remove the role.",

    "operation_failed": (
        "❌ **Operation Failed**\n\n"
        "The operation could not be completed.\n"
        "• {reason}\n"
        "• Please try again"
    ),
}
