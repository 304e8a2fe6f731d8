"""Support ticket lifecycle: create, claim, escalate and close ticket channels."""

from __future__ import annotations

import asyncio
from io import BytesIO
from typing import TYPE_CHECKING, Optional

import chat_exporter
import discord
from discord import app_commands
from discord.ext import commands

from support_core.constants import (
    CLAIM_BUTTON_ID,
    CLOSE_BUTTON_ID,
    TICKET_CHANNEL_NAME_MAX_LENGTH,
    TICKET_DELETE_DELAY_SECONDS,
    TICKET_FORM_TIMEOUT_SECONDS,
    TICKET_STATUS_SCAN_LIMIT,
    TRANSCRIPT_VIEWER_URL,
)
from support_core.errors import ExternalApiError, NotFoundError, PermissionDeniedError, SupportError
from support_core.logger import get_logger
from support_core.tickets import TicketState
from support_core.utils import (
    can_claim_tickets,
    get_error_message,
    ticket_claimed_embed,
    ticket_closed_embed,
    ticket_summary_embed,
)

if TYPE_CHECKING:
    from bot import SupportCoreBot
    from support_core.context import SupportContext

logger = get_logger("tickets")

TICKET_MEMBER_PERMISSIONS = dict(view_channel=True, send_messages=True, attach_files=True)


async def _reply(interaction: discord.Interaction, content: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


def _ticket_cog(interaction: discord.Interaction) -> Optional["TicketCog"]:
    cog = interaction.client.get_cog("TicketCog")
    return cog if isinstance(cog, TicketCog) else None


class TicketControlsView(discord.ui.View):
    """Persistent claim/close buttons attached to a ticket's status message."""

    def __init__(self, *, claimed: bool = False, escalated: bool = False) -> None:
        super().__init__(timeout=None)
        self.claim_button.label = "Ask More Support" if claimed else "Claim Ticket"
        self.claim_button.style = discord.ButtonStyle.secondary if claimed else discord.ButtonStyle.primary
        self.claim_button.disabled = escalated
        if not claimed:
            self.remove_item(self.close_button)

    @discord.ui.button(label="Claim Ticket", style=discord.ButtonStyle.primary, custom_id=CLAIM_BUTTON_ID)
    async def claim_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        cog = _ticket_cog(interaction)
        if cog is None:
            await _reply(interaction, "Ticket system is not available.")
            return
        await cog.claim_ticket(interaction)

    @discord.ui.button(label="Close Ticket", style=discord.ButtonStyle.danger, custom_id=CLOSE_BUTTON_ID)
    async def close_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        cog = _ticket_cog(interaction)
        if cog is None:
            await _reply(interaction, "Ticket system is not available.")
            return
        await cog.close_ticket(interaction)


class TicketModal(discord.ui.Modal, title="Create a Ticket"):
    """Collects the ticket details. ``submission`` is set once the user submits."""

    reason = discord.ui.TextInput(
        label="Reason for ticket",
        style=discord.TextStyle.short,
        required=True,
        max_length=200,
    )

    username = discord.ui.TextInput(
        label="Roblox Username",
        style=discord.TextStyle.short,
        required=True,
        max_length=100,
    )

    details = discord.ui.TextInput(
        label="Additional Information",
        placeholder="Anything else staff should know...",
        style=discord.TextStyle.paragraph,
        required=False,
        max_length=1000,
    )

    def __init__(self, *, timeout: float = TICKET_FORM_TIMEOUT_SECONDS) -> None:
        super().__init__(timeout=timeout)
        self.submission: Optional[discord.Interaction] = None

    async def on_submit(self, interaction: discord.Interaction) -> None:
        self.submission = interaction
        self.stop()


class TicketCog(commands.Cog):
    def __init__(self, bot: SupportCoreBot, context: SupportContext) -> None:
        self.bot = bot
        self.context = context
        self.registry = context.tickets
        self._deletions: set[asyncio.Task] = set()

    async def cog_load(self) -> None:
        await self.registry.load()

    async def cog_unload(self) -> None:
        for task in list(self._deletions):
            task.cancel()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _sanitize_username(self, username: str) -> str:
        """Sanitize username for use in channel names."""
        sanitized = username.lower()
        sanitized = ''.join(c if c.isalnum() or c == '-' else '-' for c in sanitized)
        sanitized = sanitized.strip('-')
        if not sanitized:
            sanitized = "user"
        return sanitized[:20]

    def _channel_name(self, username: str) -> str:
        return f"ticket-{self._sanitize_username(username)}"[:TICKET_CHANNEL_NAME_MAX_LENGTH]

    def _claimed_channel_name(self, name: str) -> str:
        if name.startswith("claimed-"):
            return name
        return f"claimed-{name}"[:TICKET_CHANNEL_NAME_MAX_LENGTH]

    def _resolve_member(self, interaction: discord.Interaction) -> discord.Member | None:
        if isinstance(interaction.user, discord.Member):
            return interaction.user
        if interaction.guild:
            return interaction.guild.get_member(interaction.user.id)
        return None

    def _ticket_overwrites(
        self, guild: discord.Guild, member: discord.abc.Snowflake
    ) -> dict[discord.abc.Snowflake, discord.PermissionOverwrite]:
        allow = discord.PermissionOverwrite(**TICKET_MEMBER_PERMISSIONS)
        overwrites: dict[discord.abc.Snowflake, discord.PermissionOverwrite] = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            member: allow,
        }
        if guild.me is not None:
            overwrites[guild.me] = allow

        for role_id in self.context.config.role_ids.support_roles:
            role = guild.get_role(role_id)
            if role is None:
                logger.warning("Support role %s not found in guild %s", role_id, guild.id)
                continue
            overwrites[role] = allow
        return overwrites

    async def _get_text_channel(self, guild: discord.Guild, channel_id: int) -> discord.TextChannel | None:
        channel = guild.get_channel(channel_id)
        if isinstance(channel, discord.TextChannel):
            return channel

        try:
            fetched = await self.bot.fetch_channel(channel_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None
        return fetched if isinstance(fetched, discord.TextChannel) else None

    async def _fetch_status_message(self, channel: discord.TextChannel) -> discord.Message | None:
        """The status message is the first message in the channel carrying an embed and buttons."""
        async for message in channel.history(limit=TICKET_STATUS_SCAN_LIMIT, oldest_first=True):
            if message.embeds and message.components:
                return message
        return None

    async def _update_status_message(
        self,
        channel: discord.TextChannel,
        *,
        footer: str,
        color: discord.Color,
        view: TicketControlsView,
    ) -> None:
        status = await self._fetch_status_message(channel)
        if status is None:
            logger.warning("Status message not found in ticket channel %s", channel.id)
            return

        embed = status.embeds[0].copy()
        embed.set_footer(text=footer)
        embed.color = color
        status = await status.edit(embed=embed, view=view)
        if not status.pinned:
            await status.pin(reason="Ticket status")

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    @app_commands.command(name="ticket", description="Open a support ticket")
    @app_commands.guild_only()
    async def ticket(self, interaction: discord.Interaction) -> None:
        await self.create_ticket(interaction)

    async def create_ticket(self, interaction: discord.Interaction) -> None:
        if interaction.guild is None:
            await _reply(interaction, get_error_message("guild_only"))
            return

        try:
            self.registry.ensure_can_open(interaction.user.id)
        except SupportError as e:
            await _reply(interaction, e.user_message)
            return

        modal = TicketModal()
        await interaction.response.send_modal(modal)

        timed_out = await modal.wait()
        submission = modal.submission
        if timed_out or submission is None:
            logger.info("Ticket form for user %s was not submitted in time", interaction.user.id)
            try:
                await interaction.followup.send(get_error_message("ticket_form_timeout"), ephemeral=True)
            except discord.HTTPException as e:
                logger.debug("Could not notify user %s about the form timeout: %s", interaction.user.id, e)
            return

        await submission.response.defer(ephemeral=True, thinking=True)

        try:
            channel = await self.open_ticket(
                submission,
                reason=modal.reason.value,
                username=modal.username.value,
                details=modal.details.value,
            )
        except SupportError as e:
            await _reply(submission, e.user_message)
            return
        except Exception as e:
            logger.error("Error creating ticket for user %s: %s", interaction.user.id, e, exc_info=True)
            await _reply(submission, get_error_message("ticket_create_failed"))
            return

        await _reply(submission, f"✅ Your ticket has been created: {channel.mention}")

    async def open_ticket(
        self,
        interaction: discord.Interaction,
        *,
        reason: str,
        username: str,
        details: str | None = None,
    ) -> discord.TextChannel:
        """Create and register the ticket channel for ``interaction.user``."""
        guild = interaction.guild
        user = interaction.user

        async with self.context.locks.hold(("ticket-user", user.id)):
            # another ticket may have been opened while the form was open
            self.registry.ensure_can_open(user.id)

            category_id = self.context.config.ticket_categories.support
            category = guild.get_channel(category_id)
            if not isinstance(category, discord.CategoryChannel):
                logger.error("Ticket category %s not found", category_id)
                raise NotFoundError(get_error_message("ticket_category_missing"))

            try:
                channel = await guild.create_text_channel(
                    name=self._channel_name(user.name),
                    category=category,
                    overwrites=self._ticket_overwrites(guild, user),
                    reason=f"Support ticket for {user.name}",
                )
            except discord.HTTPException as e:
                logger.error("Failed to create ticket channel for user %s: %s", user.id, e)
                raise ExternalApiError(
                    get_error_message("ticket_create_failed"), operation="create_channel"
                ) from e

            try:
                await self.registry.open(user.id, channel.id)
            except Exception:
                try:
                    await channel.delete(reason="Ticket could not be registered")
                except discord.HTTPException as e:
                    logger.error("Failed to remove unregistered ticket channel %s: %s", channel.id, e)
                raise

            try:
                await channel.send(
                    content=user.mention,
                    embed=ticket_summary_embed(reason, username, details),
                    view=TicketControlsView(),
                )
            except discord.HTTPException as e:
                # without the controls the ticket could never be claimed or closed
                logger.error("Failed to post ticket summary in channel %s: %s", channel.id, e)
                await self.registry.forget_channel(channel.id)
                try:
                    await channel.delete(reason="Ticket controls could not be posted")
                except discord.HTTPException as delete_error:
                    logger.error("Failed to remove ticket channel %s: %s", channel.id, delete_error)
                raise ExternalApiError(
                    get_error_message("ticket_create_failed"), operation="send_summary"
                ) from e

        logger.info("Created ticket channel %s (%s) for user %s", channel.id, channel.name, user.id)
        return channel

    # ------------------------------------------------------------------
    # claim / escalate
    # ------------------------------------------------------------------

    async def claim_ticket(self, interaction: discord.Interaction) -> None:
        channel = interaction.channel
        if interaction.guild is None or not isinstance(channel, discord.TextChannel):
            await _reply(interaction, get_error_message("not_a_ticket"))
            return

        member = self._resolve_member(interaction)
        if not can_claim_tickets(member, self.context.config) or self.registry.owner_of(channel.id) == interaction.user.id:
            await _reply(interaction, get_error_message("claim_not_allowed"))
            return

        async with self.context.locks.hold(("ticket-channel", channel.id)):
            try:
                new_state = await self.registry.claim(channel.id, interaction.user.id)
            except SupportError as e:
                await _reply(interaction, e.user_message)
                return
            except Exception as e:
                logger.error("Failed to record claim on ticket %s: %s", channel.id, e, exc_info=True)
                await _reply(interaction, get_error_message("operation_failed", reason="The claim could not be saved."))
                return

            await interaction.response.defer(ephemeral=True, thinking=True)

            try:
                if new_state is TicketState.CLAIMED:
                    await self._announce_claim(channel, interaction.user)
                    message = "You have claimed this ticket."
                else:
                    await self._escalate(channel, interaction.user)
                    message = "You have requested more support. Founders and senior staff have been notified."
            except discord.HTTPException as e:
                logger.error(
                    "Failed to update ticket channel %s after %s: %s", channel.id, new_state.value, e, exc_info=True
                )
                if new_state is TicketState.ESCALATED:
                    try:
                        await self.registry.unescalate(channel.id)
                    except Exception as rollback_error:
                        logger.error("Failed to roll back escalation of ticket %s: %s", channel.id, rollback_error)
                await _reply(
                    interaction,
                    get_error_message("operation_failed", reason="The ticket channel could not be updated."),
                )
                return

        await _reply(interaction, message)

    async def _announce_claim(self, channel: discord.TextChannel, claimer: discord.abc.User) -> None:
        try:
            await channel.edit(name=self._claimed_channel_name(channel.name), reason=f"Ticket claimed by {claimer}")
        except discord.HTTPException as e:
            # renames are heavily rate limited, the claim stands without it
            logger.warning("Failed to rename claimed ticket channel %s: %s", channel.id, e)

        await self._update_status_message(
            channel,
            footer=f"Claimed by: {claimer}",
            color=discord.Color.yellow(),
            view=TicketControlsView(claimed=True),
        )
        await channel.send(embed=ticket_claimed_embed(str(claimer)))
        logger.info("Ticket channel %s claimed by %s", channel.id, claimer.id)

    async def _escalate(self, channel: discord.TextChannel, claimer: discord.abc.User) -> None:
        guild = channel.guild
        role_ids = self.context.config.role_ids

        for role_id in role_ids.support_roles:
            role = guild.get_role(role_id)
            if role is not None:
                await channel.set_permissions(role, view_channel=False, reason="Ticket escalated")

        elevated = [role for role in (guild.get_role(role_id) for role_id in role_ids.elevated_roles) if role]
        for role in elevated:
            await channel.set_permissions(role, reason="Ticket escalated", **TICKET_MEMBER_PERMISSIONS)

        # the claimant keeps access even though the support roles lose it
        await channel.set_permissions(claimer, reason="Ticket escalated", **TICKET_MEMBER_PERMISSIONS)

        if elevated:
            mentions = " ".join(role.mention for role in elevated)
            await channel.send(
                content=f"Attention {mentions}, this ticket requires your attention.",
                allowed_mentions=discord.AllowedMentions(roles=True),
            )
        else:
            logger.warning("No senior staff or founder roles found to notify for ticket %s", channel.id)

        await self._update_status_message(
            channel,
            footer=f"Claimed by: {claimer} | Waiting for more support.",
            color=discord.Color.blue(),
            view=TicketControlsView(claimed=True, escalated=True),
        )
        logger.info("Ticket channel %s escalated by %s", channel.id, claimer.id)

    # ------------------------------------------------------------------
    # close
    # ------------------------------------------------------------------

    async def close_ticket(self, interaction: discord.Interaction) -> None:
        channel = interaction.channel
        if interaction.guild is None or not isinstance(channel, discord.TextChannel):
            await _reply(interaction, get_error_message("not_a_ticket"))
            return

        async with self.context.locks.hold(("ticket-channel", channel.id)):
            try:
                self.registry.ensure_can_close(channel.id, interaction.user.id)
            except SupportError as e:
                await _reply(interaction, e.user_message)
                return

            await interaction.response.send_message("Closing ticket...", ephemeral=True)
            await self._archive_ticket(channel, interaction.user)

            try:
                await self.registry.close(channel.id, interaction.user.id)
            except (NotFoundError, PermissionDeniedError) as e:
                await _reply(interaction, e.user_message)
                return
            except Exception as e:
                logger.error("Failed to remove ticket %s from the registry: %s", channel.id, e, exc_info=True)
                await _reply(interaction, get_error_message("operation_failed", reason="The ticket could not be closed."))
                return

        try:
            await interaction.edit_original_response(
                content=f"Ticket will be closed in {TICKET_DELETE_DELAY_SECONDS} seconds..."
            )
        except discord.HTTPException as e:
            logger.debug("Could not update close confirmation for ticket %s: %s", channel.id, e)

        self.schedule_channel_deletion(channel.guild, channel.id)

    async def _archive_ticket(self, channel: discord.TextChannel, closer: discord.abc.User) -> None:
        """Export the transcript and post the closure record to the tickets log channel."""
        log_channel_id = self.context.config.logging_channels.tickets
        log_channel = channel.guild.get_channel(log_channel_id)
        if not isinstance(log_channel, discord.TextChannel):
            logger.warning("Tickets log channel %s not found; skipping transcript", log_channel_id)
            return

        transcript_html = None
        try:
            transcript_html = await chat_exporter.export(
                channel,
                limit=None,
                tz_info="UTC",
                bot=self.bot,
            )
        except Exception as e:
            logger.error("Failed to generate transcript for ticket %s: %s", channel.id, e, exc_info=True)

        embed = ticket_closed_embed(channel.name, str(closer))
        embed.add_field(name="Channel", value=f"#{channel.name} ({channel.id})", inline=True)
        owner_id = self.registry.owner_of(channel.id)
        if owner_id:
            embed.add_field(name="Opened By", value=f"<@{owner_id}>", inline=True)

        try:
            send_kwargs: dict = {"embed": embed}
            if transcript_html:
                transcript_file = discord.File(
                    BytesIO(transcript_html.encode("utf-8")),
                    filename=f"transcript-{channel.name}.html",
                )
                upload = await log_channel.send(file=transcript_file)
                if upload.attachments:
                    url = upload.attachments[0].url
                    links = discord.ui.View(timeout=None)
                    links.add_item(discord.ui.Button(label="Open Transcript", url=TRANSCRIPT_VIEWER_URL.format(url=url)))
                    links.add_item(discord.ui.Button(label="Download Transcript", url=url))
                    send_kwargs["view"] = links

            await log_channel.send(**send_kwargs)
            logger.info("Logged closure of ticket %s to channel %s", channel.id, log_channel_id)
        except discord.HTTPException as e:
            logger.error("Failed to log ticket closure to channel %s: %s", log_channel_id, e)

    def schedule_channel_deletion(
        self, guild: discord.Guild, channel_id: int, delay: float = TICKET_DELETE_DELAY_SECONDS
    ) -> asyncio.Task:
        task = asyncio.create_task(self._delete_channel_later(guild, channel_id, delay))
        self._deletions.add(task)
        task.add_done_callback(self._deletions.discard)
        return task

    async def _delete_channel_later(self, guild: discord.Guild, channel_id: int, delay: float) -> bool:
        await asyncio.sleep(delay)

        channel = await self._get_text_channel(guild, channel_id)
        if channel is None:
            logger.info("Ticket channel %s no longer exists; skipping deletion", channel_id)
            return False

        try:
            await channel.delete(reason="Ticket closed")
        except discord.NotFound:
            logger.info("Ticket channel %s was deleted before cleanup", channel_id)
            return False
        except discord.HTTPException as e:
            logger.error("Failed to delete ticket channel %s: %s", channel_id, e)
            return False

        logger.info("Deleted ticket channel %s", channel_id)
        return True

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        async with self.context.locks.hold(("ticket-channel", channel.id)):
            try:
                if await self.registry.forget_channel(channel.id):
                    logger.info("Ticket channel %s was deleted externally; registry entries removed", channel.id)
            except Exception as e:
                logger.error("Failed to drop registry entries for deleted channel %s: %s", channel.id, e, exc_info=True)


async def setup(bot: SupportCoreBot) -> None:
    bot.add_view(TicketControlsView(claimed=True))
    await bot.add_cog(TicketCog(bot, bot.context))
