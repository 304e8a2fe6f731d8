"""Embed factory utilities."""

from __future__ import annotations

from typing import Optional

import discord

from ..constants import EMBED_FIELD_VALUE_MAX_LENGTH


def create_embed(
    title: Optional[str] = None,
    description: Optional[str] = None,
    color: discord.Color = discord.Color.blue(),
    footer: Optional[str] = None,
    timestamp: bool = False
) -> discord.Embed:
    """
    Create a standardized Discord embed.

    Args:
        title: Embed title
        description: Embed description
        color: Embed color (default: blue)
        footer: Footer text
        timestamp: Whether to add current timestamp

    Returns:
        Configured Discord Embed
    """
    embed = discord.Embed(
        title=title,
        description=description,
        color=color
    )

    if footer:
        embed.set_footer(text=footer)

    if timestamp:
        embed.timestamp = discord.utils.utcnow()

    return embed


def _field_value(value: str | None, fallback: str) -> str:
    text = (value or "").strip() or fallback
    if len(text) > EMBED_FIELD_VALUE_MAX_LENGTH:
        text = text[: EMBED_FIELD_VALUE_MAX_LENGTH - 3] + "..."
    return text


def ticket_summary_embed(reason: str, username: str, details: str | None = None) -> discord.Embed:
    embed = create_embed(
        title="Ticket Created",
        description="Support will be with you shortly.",
        color=discord.Color.blue(),
        timestamp=True,
    )
    embed.add_field(name="Reason", value=_field_value(reason, "Not provided"), inline=False)
    embed.add_field(name="Roblox Username", value=_field_value(username, "Not provided"), inline=False)
    embed.add_field(
        name="Additional Information",
        value=_field_value(details, "No additional information provided"),
        inline=False,
    )
    return embed


def ticket_claimed_embed(claimer_tag: str) -> discord.Embed:
    return create_embed(
        title="Ticket Claimed",
        description=f"This ticket has been claimed by {claimer_tag}",
        color=discord.Color.green(),
    )


def ticket_closed_embed(channel_name: str, closer_tag: str) -> discord.Embed:
    return create_embed(
        title=f"Ticket Closed: {channel_name}",
        description=f"Ticket closed by {closer_tag}",
        color=discord.Color.red(),
        timestamp=True,
    )
