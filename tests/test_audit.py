from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from support_core.audit import AuditLog, AuditRecord, build_audit_embed


def _fields(embed: discord.Embed) -> dict[str, str]:
    return {field.name: field.value for field in embed.fields}


def test_successful_grant_embed():
    record = AuditRecord(action="added", target_id=1, role_id=2, role_name="VIP", actor_id=3, duration="7d")

    embed = build_audit_embed(record)

    assert embed.title == "Membership Role Added"
    assert embed.color == discord.Color.green()
    fields = _fields(embed)
    assert fields["User"] == "<@1> (1)"
    assert fields["Role"] == "VIP"
    assert fields["Action By"] == "<@3> (3)"
    assert fields["Status"] == "Success"
    assert fields["Duration"] == "7d"
    assert "Error" not in fields


def test_failed_record_embed():
    record = AuditRecord(
        action="removed", target_id=1, role_id=2, role_name="VIP", actor_id=3, success=False, error="Nope"
    )

    embed = build_audit_embed(record)

    assert embed.color == discord.Color.from_str("#ff6b6b")
    fields = _fields(embed)
    assert fields["Status"] == "Failed"
    assert fields["Error"] == "Nope"
    assert "Duration" not in fields


def test_expiry_embed_has_no_actor():
    embed = build_audit_embed(AuditRecord(action="expired", target_id=1, role_id=2, role_name="VIP"))

    assert embed.title == "Membership Role Expired"
    assert _fields(embed)["Action By"] == "Automatic expiry"


def test_summary_mentions_duration_for_grants():
    record = AuditRecord(action="added", target_id=1, role_id=2, role_name="VIP", duration="perm")
    assert "duration=Permanent" in record.summary()
    assert "by=system" in record.summary()


@pytest.mark.asyncio
async def test_audit_log_delivers_to_channel():
    channel = MagicMock()
    channel.send = AsyncMock()
    bot = MagicMock()
    bot.get_channel = MagicMock(return_value=channel)
    audit = AuditLog(bot, 555)

    audit.record(AuditRecord(action="added", target_id=1, role_id=2, role_name="VIP"))
    await audit.drain()

    bot.get_channel.assert_called_once_with(555)
    assert channel.send.await_args.kwargs["embed"].title == "Membership Role Added"


@pytest.mark.asyncio
async def test_audit_log_swallows_delivery_failure():
    channel = MagicMock()
    channel.send = AsyncMock(side_effect=discord.HTTPException(MagicMock(status=500), "down"))
    bot = MagicMock()
    bot.get_channel = MagicMock(return_value=channel)
    audit = AuditLog(bot, 555)

    task = audit.record(AuditRecord(action="removed", target_id=1, role_id=2, role_name="VIP"))
    await task

    assert task.exception() is None


@pytest.mark.asyncio
async def test_audit_log_missing_channel():
    bot = MagicMock()
    bot.get_channel = MagicMock(return_value=None)
    audit = AuditLog(bot, 555)

    await audit.record(AuditRecord(action="expired", target_id=1, role_id=2, role_name="VIP"))


def test_audit_log_without_event_loop():
    audit = AuditLog(MagicMock(), 555)
    assert audit.record(AuditRecord(action="added", target_id=1, role_id=2, role_name="VIP")) is None
