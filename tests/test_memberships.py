import pytest

from support_core.constants import MEMBERSHIPS_KEY
from support_core.memberships import Membership, MembershipRegistry


@pytest.fixture
def registry(store):
    return MembershipRegistry(store)


def test_membership_due_and_remaining():
    membership = Membership(user_id=1, guild_id=2, role_id=3, expires_at=10_000)

    assert membership.key == (2, 1, 3)
    assert not membership.is_due(9_999)
    assert membership.is_due(10_000)
    assert membership.remaining_ms(4_000) == 6_000
    assert membership.remaining_ms(20_000) == 0


def test_permanent_membership_never_due():
    membership = Membership(user_id=1, guild_id=2, role_id=3)

    assert membership.is_permanent
    assert not membership.is_due(10**15)
    with pytest.raises(ValueError):
        membership.remaining_ms(0)


def test_from_dict_coerces_ids():
    membership = Membership.from_dict({"user_id": "1", "guild_id": "2", "role_id": "3", "expires_at": "99"})
    assert membership == Membership(user_id=1, guild_id=2, role_id=3, expires_at=99)


@pytest.mark.asyncio
async def test_load_empty_store(registry):
    assert await registry.load() == []


@pytest.mark.asyncio
async def test_load_skips_malformed_records(registry, store):
    await store.set(
        MEMBERSHIPS_KEY,
        [
            {"user_id": 1, "guild_id": 2, "role_id": 3, "expires_at": 5},
            {"user_id": "abc", "guild_id": 2, "role_id": 3},
            {"guild_id": 2},
            "not-a-record",
        ],
    )

    assert await registry.load() == [Membership(user_id=1, guild_id=2, role_id=3, expires_at=5)]


@pytest.mark.asyncio
async def test_load_non_list_payload_is_empty(registry, store):
    await store.set(MEMBERSHIPS_KEY, {"oops": True})
    assert await registry.load() == []


@pytest.mark.asyncio
async def test_add_replaces_same_key(registry):
    await registry.add(Membership(user_id=1, guild_id=2, role_id=3, expires_at=100))
    await registry.add(Membership(user_id=1, guild_id=2, role_id=3, expires_at=200))
    await registry.add(Membership(user_id=1, guild_id=2, role_id=4, expires_at=300))

    memberships = await registry.load()
    assert len(memberships) == 2
    assert (await registry.get(2, 1, 3)).expires_at == 200


@pytest.mark.asyncio
async def test_remove_is_idempotent(registry):
    await registry.add(Membership(user_id=1, guild_id=2, role_id=3, expires_at=100))

    assert await registry.remove(1, 3, 2) == 1
    assert await registry.remove(1, 3, 2) == 0
    assert await registry.load() == []


@pytest.mark.asyncio
async def test_remove_only_matching_guild(registry):
    await registry.add(Membership(user_id=1, guild_id=2, role_id=3, expires_at=100))
    await registry.add(Membership(user_id=1, guild_id=9, role_id=3, expires_at=100))

    await registry.remove(1, 3, guild_id=2)

    assert [m.guild_id for m in await registry.load()] == [9]


@pytest.mark.asyncio
async def test_remove_without_guild_matches_every_guild(registry):
    await registry.add(Membership(user_id=1, guild_id=2, role_id=3, expires_at=100))
    await registry.add(Membership(user_id=1, guild_id=9, role_id=3, expires_at=100))

    assert await registry.remove(1, 3) == 2


@pytest.mark.asyncio
async def test_partition_splits_due_and_pending(registry):
    await registry.add(Membership(user_id=1, guild_id=2, role_id=3, expires_at=1_000))
    await registry.add(Membership(user_id=4, guild_id=2, role_id=3, expires_at=5_000))
    await registry.add(Membership(user_id=5, guild_id=2, role_id=3))

    due, pending = await registry.partition(2_000)

    assert [m.user_id for m in due] == [1]
    assert [m.user_id for m in pending] == [4]
