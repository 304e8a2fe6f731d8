"""Time-limited membership roles with automatic expiry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from support_core.audit import AuditLog, AuditRecord
from support_core.constants import EXPIRY_SWEEP_INTERVAL_MINUTES, MS_PER_SECOND
from support_core.durations import format_duration, parse_duration
from support_core.errors import InvalidDurationFormat
from support_core.logger import get_logger
from support_core.memberships import Membership
from support_core.utils import get_error_message, now_ms

if TYPE_CHECKING:
    from bot import SupportCoreBot
    from support_core.context import SupportContext

logger = get_logger("memberships")

# timers can wake a few ms early; anything this close to expiry is treated as due
EXPIRY_TOLERANCE_MS = 1000


async def _reply(interaction: discord.Interaction, content: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


def _holds_role(member: discord.Member, role: discord.Role) -> bool:
    return any(held.id == role.id for held in member.roles)


class MembershipCog(commands.Cog):
    def __init__(self, bot: SupportCoreBot, context: SupportContext) -> None:
        self.bot = bot
        self.context = context
        self.registry = context.memberships
        self.scheduler = context.scheduler
        self.audit = AuditLog(bot, context.config.logging_channels.memberships)

    async def cog_load(self) -> None:
        """Start the expiry sweep. Its first pass reconciles records left over from a restart."""
        self.expiry_sweep.start()

    async def cog_unload(self) -> None:
        self.expiry_sweep.cancel()
        self.scheduler.cancel_all()
        logger.info("Membership expiry sweep stopped")

    def _lock(self, guild_id: int, user_id: int, role_id: int):
        return self.context.locks.hold(("membership", guild_id, user_id, role_id))

    def _audit(
        self,
        action: str,
        member: discord.abc.User,
        role: discord.Role,
        *,
        actor: Optional[discord.abc.User] = None,
        duration: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        avatar = getattr(member, "display_avatar", None)
        try:
            self.audit.record(
                AuditRecord(
                    action=action,
                    target_id=member.id,
                    role_id=role.id,
                    role_name=role.name,
                    actor_id=actor.id if actor else None,
                    duration=duration,
                    success=error is None,
                    error=error,
                    target_avatar_url=str(avatar.url) if avatar else None,
                )
            )
        except Exception as e:
            logger.error("Failed to record membership audit for user %s: %s", member.id, e, exc_info=True)

    async def _fetch_member(self, guild: discord.Guild, user_id: int) -> discord.Member | None:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.NotFound:
            return None

    def _schedule_expiry(self, membership: Membership, now: Optional[int] = None) -> None:
        delay = membership.remaining_ms(now if now is not None else now_ms()) / MS_PER_SECOND
        self.scheduler.schedule(
            membership.key,
            delay,
            lambda: self._expire_if_due(membership.guild_id, membership.user_id, membership.role_id),
        )

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------

    @app_commands.command(name="m-membership", description="Assign a membership role to a user")
    @app_commands.describe(
        user="The user to assign the membership role to",
        role="The membership role to assign",
        duration="Duration of the membership (e.g., 1h, 2d, 30m, perm)",
    )
    @app_commands.default_permissions(kick_members=True)
    @app_commands.guild_only()
    async def membership_add(
        self, interaction: discord.Interaction, user: discord.Member, role: discord.Role, duration: str
    ) -> None:
        await self.assign_membership(interaction, user, role, duration)

    @app_commands.command(name="m-unmembership", description="Remove a membership role from a user")
    @app_commands.describe(
        user="The user to remove the membership role from",
        role="The membership role to remove",
    )
    @app_commands.default_permissions(kick_members=True)
    @app_commands.guild_only()
    async def membership_remove(
        self, interaction: discord.Interaction, user: discord.Member, role: discord.Role
    ) -> None:
        await self.remove_membership(interaction, user, role)

    # ------------------------------------------------------------------
    # grant / revoke
    # ------------------------------------------------------------------

    async def assign_membership(
        self,
        interaction: discord.Interaction,
        member: Optional[discord.Member],
        role: Optional[discord.Role],
        duration: Optional[str],
    ) -> None:
        guild = interaction.guild
        if guild is None or member is None or role is None or not duration:
            if member is not None and role is not None:
                self._audit("added", member, role, actor=interaction.user, duration=duration, error="Invalid user, role, or duration.")
            await _reply(interaction, get_error_message("invalid_membership_target"))
            return

        try:
            duration_ms = parse_duration(duration)
        except InvalidDurationFormat as e:
            self._audit("added", member, role, actor=interaction.user, duration=duration, error="Invalid duration format.")
            await _reply(interaction, e.user_message)
            return

        await interaction.response.defer(ephemeral=True, thinking=True)

        async with self._lock(guild.id, member.id, role.id):
            if _holds_role(member, role):
                self._audit("added", member, role, actor=interaction.user, duration=duration, error="User already has this role.")
                await _reply(interaction, get_error_message("role_already_held", member=member.mention))
                return

            try:
                await member.add_roles(
                    role, reason=f"Membership granted by {interaction.user} ({format_duration(duration)})"
                )
            except discord.HTTPException as e:
                logger.error("Failed to add role %s to user %s: %s", role.id, member.id, e)
                self._audit("added", member, role, actor=interaction.user, duration=duration, error="Failed to assign the role.")
                await _reply(interaction, get_error_message("role_assign_failed"))
                return

            key = (guild.id, member.id, role.id)
            try:
                if duration_ms is None:
                    # a stale time-limited record would otherwise strip the permanent grant later
                    await self.registry.remove(member.id, role.id, guild.id)
                    self.scheduler.cancel(key)
                else:
                    membership = Membership(
                        user_id=member.id,
                        guild_id=guild.id,
                        role_id=role.id,
                        expires_at=now_ms() + duration_ms,
                    )
                    await self.registry.add(membership)
                    self._schedule_expiry(membership)
            except Exception as e:
                logger.error("Failed to record membership for user %s role %s: %s", member.id, role.id, e, exc_info=True)
                if duration_ms is not None:
                    try:
                        await member.remove_roles(role, reason="Membership could not be recorded")
                    except discord.HTTPException as remove_error:
                        logger.error("Failed to roll back role %s on user %s: %s", role.id, member.id, remove_error)
                    self._audit("added", member, role, actor=interaction.user, duration=duration, error="Failed to record the membership.")
                    await _reply(interaction, get_error_message("role_assign_failed"))
                    return

        logger.info(
            "Membership role %s assigned to user %s by %s (%s)",
            role.id,
            member.id,
            interaction.user.id,
            format_duration(duration),
        )
        self._audit("added", member, role, actor=interaction.user, duration=duration)
        await _reply(interaction, f"Role {role.mention} assigned to {member.mention} ({format_duration(duration)}).")

    async def remove_membership(
        self,
        interaction: discord.Interaction,
        member: Optional[discord.Member],
        role: Optional[discord.Role],
    ) -> None:
        guild = interaction.guild
        if guild is None or member is None or role is None:
            if member is not None and role is not None:
                self._audit("removed", member, role, actor=interaction.user, error="Invalid user, role, or duration.")
            await _reply(interaction, get_error_message("invalid_membership_target"))
            return

        await interaction.response.defer(ephemeral=True, thinking=True)

        async with self._lock(guild.id, member.id, role.id):
            if not _holds_role(member, role):
                self._audit("removed", member, role, actor=interaction.user, error="User does not have this role.")
                await _reply(interaction, get_error_message("role_not_held", member=member.mention))
                return

            try:
                await member.remove_roles(role, reason=f"Membership revoked by {interaction.user}")
            except discord.HTTPException as e:
                logger.error("Failed to remove role %s from user %s: %s", role.id, member.id, e)
                self._audit("removed", member, role, actor=interaction.user, error="Failed to remove the role.")
                await _reply(interaction, get_error_message("role_remove_failed"))
                return

            self.scheduler.cancel((guild.id, member.id, role.id))
            try:
                await self.registry.remove(member.id, role.id, guild.id)
            except Exception as e:
                # the next sweep finds the role gone and drops the record
                logger.error("Failed to delete membership record for user %s role %s: %s", member.id, role.id, e, exc_info=True)

        logger.info("Membership role %s removed from user %s by %s", role.id, member.id, interaction.user.id)
        self._audit("removed", member, role, actor=interaction.user)
        await _reply(interaction, f"Role {role.mention} removed from {member.mention}.")

    # ------------------------------------------------------------------
    # expiry
    # ------------------------------------------------------------------

    async def remove_expired_role(self, guild: discord.Guild, user_id: int, role_id: int) -> bool:
        """
        Take an expired membership role away and delete its record.

        A member or role that no longer exists, or a role the member no
        longer holds, leaves nothing to remove and the record is dropped.
        If Discord refuses the removal the record is kept so the next sweep
        retries. Returns True only when a role was actually removed.

        The record is re-read under the lock, so a membership revoked,
        extended or made permanent since the caller saw it is left alone.
        """
        async with self._lock(guild.id, user_id, role_id):
            record = await self.registry.get(guild.id, user_id, role_id)
            if record is None or not record.is_due(now_ms() + EXPIRY_TOLERANCE_MS):
                logger.debug("Membership for user %s role %s is no longer due; skipping expiry", user_id, role_id)
                return False

            self.scheduler.cancel((guild.id, user_id, role_id))

            try:
                member = await self._fetch_member(guild, user_id)
            except discord.HTTPException as e:
                logger.error("Failed to fetch member %s for membership expiry: %s", user_id, e)
                return False

            role = guild.get_role(role_id)
            if member is None or role is None:
                logger.info(
                    "Membership for user %s role %s in guild %s expired but the %s no longer exists",
                    user_id,
                    role_id,
                    guild.id,
                    "member" if member is None else "role",
                )
                await self.registry.remove(user_id, role_id, guild.id)
                return False

            if not _holds_role(member, role):
                logger.info("Expired membership role %s already removed from user %s", role_id, user_id)
                await self.registry.remove(user_id, role_id, guild.id)
                return False

            try:
                await member.remove_roles(role, reason="Membership expired")
            except discord.HTTPException as e:
                logger.error("Failed to remove expired role %s from user %s: %s", role_id, user_id, e)
                self._audit("expired", member, role, error="Failed to remove the expired role.")
                return False

            await self.registry.remove(user_id, role_id, guild.id)

        logger.info("Membership role %s expired for user %s", role_id, user_id)
        self._audit("expired", member, role)
        return True

    async def _expire_if_due(self, guild_id: int, user_id: int, role_id: int) -> None:
        """Timer callback. Re-reads the record since it may have been revoked or extended."""
        record = await self.registry.get(guild_id, user_id, role_id)
        if record is None or record.is_permanent:
            logger.debug("Expiry timer for user %s role %s has no pending record", user_id, role_id)
            return

        now = now_ms()
        if record.remaining_ms(now) > EXPIRY_TOLERANCE_MS:
            self._schedule_expiry(record, now)
            return

        guild = self.bot.get_guild(guild_id)
        if guild is None:
            logger.warning("Guild %s not available for membership expiry; leaving it for the sweep", guild_id)
            return
        await self.remove_expired_role(guild, user_id, role_id)

    async def check_expired_roles(self) -> tuple[int, int]:
        """
        Reconcile persisted memberships with the live timers.

        Removes every overdue membership and schedules a timer for any
        pending one that does not have one yet. Returns
        ``(expired, scheduled)``.
        """
        now = now_ms()
        due, pending = await self.registry.partition(now)

        expired = 0
        for membership in due:
            guild = self.bot.get_guild(membership.guild_id)
            if guild is None:
                logger.warning(
                    "Guild %s not available; expired membership for user %s kept for the next sweep",
                    membership.guild_id,
                    membership.user_id,
                )
                continue
            try:
                if await self.remove_expired_role(guild, membership.user_id, membership.role_id):
                    expired += 1
            except Exception as e:
                logger.error(
                    "Failed to expire membership for user %s role %s: %s",
                    membership.user_id,
                    membership.role_id,
                    e,
                    exc_info=True,
                )

        scheduled = 0
        for membership in pending:
            if self.scheduler.is_scheduled(membership.key):
                continue
            self._schedule_expiry(membership, now)
            scheduled += 1

        if due or scheduled:
            logger.info(
                "Membership sweep: %s due, %s expired, %s timer(s) scheduled", len(due), expired, scheduled
            )
        return expired, scheduled

    @tasks.loop(minutes=EXPIRY_SWEEP_INTERVAL_MINUTES)
    async def expiry_sweep(self) -> None:
        try:
            await self.check_expired_roles()
        except Exception as e:
            logger.error("Error in membership expiry sweep: %s", e, exc_info=True)

    @expiry_sweep.before_loop
    async def before_expiry_sweep(self) -> None:
        await self.bot.wait_until_ready()
        logger.info("Membership expiry sweep started")


async def setup(bot: SupportCoreBot) -> None:
    await bot.add_cog(MembershipCog(bot, bot.context))
