"""Fire-and-forget audit records for membership changes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import discord

from .durations import format_duration
from .logger import get_logger
from .utils.embeds import create_embed

if TYPE_CHECKING:
    from discord.ext import commands

audit_logger = get_logger("audit")

ACTION_TITLES = {
    "added": "Membership Role Added",
    "removed": "Membership Role Removed",
    "expired": "Membership Role Expired",
}


@dataclass(frozen=True)
class AuditRecord:
    action: str  # "added", "removed" or "expired"
    target_id: int
    role_id: int
    role_name: str
    actor_id: Optional[int] = None  # None when the bot acted on its own (expiry)
    duration: Optional[str] = None
    success: bool = True
    error: Optional[str] = None
    target_avatar_url: Optional[str] = None

    def summary(self) -> str:
        actor = f"<@{self.actor_id}>" if self.actor_id else "system"
        status = "success" if self.success else f"failed ({self.error})"
        text = f"membership {self.action}: user={self.target_id} role={self.role_id} by={actor} status={status}"
        if self.duration and self.action == "added":
            text += f" duration={format_duration(self.duration)}"
        return text


def build_audit_embed(record: AuditRecord) -> discord.Embed:
    if not record.success:
        color = discord.Color.from_str("#ff6b6b")
    elif record.action == "added":
        color = discord.Color.green()
    else:
        color = discord.Color.red()

    embed = create_embed(
        title=ACTION_TITLES.get(record.action, f"Membership {record.action.title()}"),
        color=color,
        timestamp=True,
    )
    if record.target_avatar_url:
        embed.set_thumbnail(url=record.target_avatar_url)

    embed.add_field(name="User", value=f"<@{record.target_id}> ({record.target_id})", inline=True)
    embed.add_field(name="Role", value=record.role_name, inline=True)
    embed.add_field(
        name="Action By",
        value=f"<@{record.actor_id}> ({record.actor_id})" if record.actor_id else "Automatic expiry",
        inline=True,
    )
    embed.add_field(name="Status", value="Success" if record.success else "Failed", inline=True)

    if record.duration and record.action == "added":
        embed.add_field(name="Duration", value=format_duration(record.duration), inline=True)

    if not record.success and record.error:
        embed.add_field(name="Error", value=record.error, inline=False)

    return embed


class AuditLog:
    """Sends audit embeds to a channel without ever blocking or failing the caller."""

    def __init__(self, bot: commands.Bot, channel_id: Optional[int]) -> None:
        self.bot = bot
        self.channel_id = channel_id
        self._pending: set[asyncio.Task] = set()

    def record(self, record: AuditRecord) -> Optional[asyncio.Task]:
        if record.success:
            audit_logger.info(record.summary())
        else:
            audit_logger.warning(record.summary())

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            audit_logger.warning("No running event loop; audit embed for user %s not sent", record.target_id)
            return None
        task = loop.create_task(self._deliver(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, record: AuditRecord) -> None:
        if not self.channel_id:
            return
        channel = self.bot.get_channel(self.channel_id)
        if channel is None:
            audit_logger.warning("Audit channel %s not found", self.channel_id)
            return
        try:
            await channel.send(embed=build_audit_embed(record))
        except Exception as e:
            audit_logger.warning("Failed to send audit record to channel %s: %s", self.channel_id, e)

    async def drain(self) -> None:
        """Wait for in-flight deliveries."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
