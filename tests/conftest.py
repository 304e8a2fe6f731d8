from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
import pytest_asyncio

from support_core.config import Config, LoggingChannels, RoleIDs, TicketCategories
from support_core.context import SupportContext
from support_core.store import KeyValueStore

GUILD_ID = 987654321
ADMIN_ROLE_ID = 5001
SUPPORT_ROLE_ID = 5002
SENIOR_STAFF_ROLE_ID = 5003
FOUNDER_ROLE_ID = 5004
STAFF_ROLE_ID = 5005
TICKET_CATEGORY_ID = 6001
TICKETS_LOG_ID = 7001
MEMBERSHIPS_LOG_ID = 7002
ERRORS_LOG_ID = 7003


class MockDiscordRole:
    def __init__(self, role_id: int, name: str = "Role") -> None:
        self.id = role_id
        self.name = name
        self.mention = f"<@&{role_id}>"


class MockDiscordMember:
    def __init__(self, member_id: int, name: str = "Member", roles: list[MockDiscordRole] | None = None) -> None:
        self.id = member_id
        self.name = name
        self.display_name = name
        self.mention = f"<@{member_id}>"
        self.roles: list[MockDiscordRole] = list(roles or [])
        self.display_avatar = MagicMock(url=f"https://cdn.example/avatars/{member_id}.png")
        self.add_roles = AsyncMock(side_effect=self._add_roles)
        self.remove_roles = AsyncMock(side_effect=self._remove_roles)

    async def _add_roles(self, *roles: MockDiscordRole, reason: str | None = None) -> None:
        self.roles.extend(roles)

    async def _remove_roles(self, *roles: MockDiscordRole, reason: str | None = None) -> None:
        removed = {role.id for role in roles}
        self.roles = [role for role in self.roles if role.id not in removed]

    def __str__(self) -> str:
        return self.name


class MockGuild:
    def __init__(self, guild_id: int = GUILD_ID) -> None:
        self.id = guild_id
        self.default_role = MockDiscordRole(guild_id, name="@everyone")
        self.me = MockDiscordMember(1, "SupportBot")
        self._members: dict[int, MockDiscordMember] = {}
        self._roles: dict[int, MockDiscordRole] = {}
        self._channels: dict[int, object] = {}
        self.fetch_member = AsyncMock(side_effect=self._fetch_member)
        self.create_text_channel = AsyncMock()

    def add_member(self, member: MockDiscordMember) -> None:
        self._members[member.id] = member

    def get_member(self, member_id: int) -> MockDiscordMember | None:
        return self._members.get(member_id)

    async def _fetch_member(self, member_id: int) -> MockDiscordMember:
        member = self._members.get(member_id)
        if member is None:
            raise discord.NotFound(MagicMock(status=404), "Unknown Member")
        return member

    def add_role(self, role: MockDiscordRole) -> None:
        self._roles[role.id] = role

    def get_role(self, role_id: int) -> MockDiscordRole | None:
        return self._roles.get(role_id)

    def add_channel(self, channel) -> None:
        self._channels[channel.id] = channel

    def remove_channel(self, channel_id: int) -> None:
        self._channels.pop(channel_id, None)

    def get_channel(self, channel_id: int):
        return self._channels.get(channel_id)


class MockInteractionResponse:
    def __init__(self) -> None:
        self._done = False
        self.messages: list[dict] = []
        self.deferred = False
        self.modal = None

    def is_done(self) -> bool:
        return self._done

    async def send_message(self, content: str | None = None, *, ephemeral: bool = False, **kwargs) -> None:
        self._done = True
        self.messages.append({"content": content, "ephemeral": ephemeral, **kwargs})

    async def defer(self, *, ephemeral: bool = False, thinking: bool = False) -> None:
        self._done = True
        self.deferred = True

    async def send_modal(self, modal) -> None:
        self._done = True
        self.modal = modal


class MockFollowup:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def send(self, content: str | None = None, *, ephemeral: bool = False, **kwargs) -> None:
        self.messages.append({"content": content, "ephemeral": ephemeral, **kwargs})


class MockInteraction:
    def __init__(self, user: MockDiscordMember, guild: MockGuild | None, channel=None, client=None) -> None:
        self.user = user
        self.guild = guild
        self.channel = channel
        self.client = client
        self.response = MockInteractionResponse()
        self.followup = MockFollowup()
        self.edit_original_response = AsyncMock()

    @property
    def replies(self) -> list[str]:
        return [m["content"] for m in self.response.messages + self.followup.messages]


class AsyncHistory:
    """Stand-in for ``channel.history()``; supports ``async for``."""

    def __init__(self, messages: list) -> None:
        self._messages = list(messages)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._messages:
            yield message


def make_text_channel(channel_id: int, guild: MockGuild, name: str = "ticket-tester", messages: list | None = None):
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = channel_id
    channel.name = name
    channel.guild = guild
    channel.mention = f"<#{channel_id}>"
    channel.send = AsyncMock()
    channel.edit = AsyncMock()
    channel.delete = AsyncMock()
    channel.set_permissions = AsyncMock()
    channel.history = MagicMock(side_effect=lambda **kwargs: AsyncHistory(messages or []))
    return channel


def make_status_message() -> MagicMock:
    message = MagicMock()
    message.embeds = [discord.Embed(title="Ticket Created")]
    message.components = [MagicMock()]
    message.pinned = False
    message.pin = AsyncMock()
    message.edit = AsyncMock(return_value=message)
    return message


@pytest.fixture
def config() -> Config:
    return Config(
        token="test-token",
        guild_ids=[GUILD_ID],
        role_ids=RoleIDs(
            admin=ADMIN_ROLE_ID,
            support=SUPPORT_ROLE_ID,
            senior_staff=SENIOR_STAFF_ROLE_ID,
            founder=FOUNDER_ROLE_ID,
            staff=STAFF_ROLE_ID,
        ),
        ticket_categories=TicketCategories(support=TICKET_CATEGORY_ID),
        logging_channels=LoggingChannels(
            tickets=TICKETS_LOG_ID,
            memberships=MEMBERSHIPS_LOG_ID,
            errors=ERRORS_LOG_ID,
        ),
        database_path=":memory:",
    )


@pytest_asyncio.fixture
async def store():
    kv = KeyValueStore(":memory:")
    await kv.connect()
    yield kv
    await kv.close()


@pytest_asyncio.fixture
async def context(config: Config, store: KeyValueStore) -> SupportContext:
    ctx = SupportContext.build(config, store)
    await ctx.tickets.load()
    yield ctx
    ctx.scheduler.cancel_all()


@pytest.fixture
def mock_guild() -> MockGuild:
    guild = MockGuild()
    for role_id, name in (
        (ADMIN_ROLE_ID, "Admin"),
        (SUPPORT_ROLE_ID, "Support"),
        (SENIOR_STAFF_ROLE_ID, "Senior Staff"),
        (FOUNDER_ROLE_ID, "Founder"),
        (STAFF_ROLE_ID, "Staff"),
    ):
        guild.add_role(MockDiscordRole(role_id, name=name))
    return guild


@pytest.fixture
def support_member(mock_guild: MockGuild) -> MockDiscordMember:
    member = MockDiscordMember(222, "helper", roles=[mock_guild.get_role(SUPPORT_ROLE_ID)])
    mock_guild.add_member(member)
    return member


@pytest.fixture
def customer(mock_guild: MockGuild) -> MockDiscordMember:
    member = MockDiscordMember(111, "customer")
    mock_guild.add_member(member)
    return member


@pytest.fixture
def mock_bot(mock_guild: MockGuild, context: SupportContext) -> MagicMock:
    bot = MagicMock()
    bot.context = context
    bot.get_guild = MagicMock(side_effect=lambda gid: mock_guild if gid == mock_guild.id else None)
    bot.get_channel = MagicMock(return_value=None)
    bot.fetch_channel = AsyncMock(side_effect=discord.NotFound(MagicMock(status=404), "Unknown Channel"))
    bot.wait_until_ready = AsyncMock()
    return bot
