from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from modledger.datatypes.moderation_datatypes import EventKind
from modledger.moderation.errors import DeliveryFailed, MutationFailed
from modledger.platform.discord_platform import DiscordAuditLogSource, DiscordPlatform


def _http_error() -> discord.HTTPException:
    return discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "Missing Permissions")


class _AuditIterator:
    def __init__(self, entries) -> None:
        self._entries = iter(entries)

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self._entries)
        except StopIteration:
            raise StopAsyncIteration


@pytest.mark.asyncio
async def test_ban_error_becomes_mutation_failed() -> None:
    guild = MagicMock()
    guild.ban = AsyncMock(side_effect=_http_error())
    platform = DiscordPlatform(guild)

    with pytest.raises(MutationFailed):
        await platform.ban(123, reason="spam")


@pytest.mark.asyncio
async def test_add_role_requires_existing_role() -> None:
    guild = MagicMock()
    guild.get_role.return_value = None
    platform = DiscordPlatform(guild)

    with pytest.raises(MutationFailed):
        await platform.add_role(1, 2)


@pytest.mark.asyncio
async def test_send_channel_message_posts_to_text_channel() -> None:
    channel = MagicMock(spec=discord.TextChannel)
    channel.send = AsyncMock()
    guild = MagicMock()
    guild.get_channel.return_value = channel

    await DiscordPlatform(guild).send_channel_message(5, "hello")

    channel.send.assert_awaited_once_with(content="hello", embed=None)


@pytest.mark.asyncio
async def test_send_channel_message_unknown_channel() -> None:
    guild = MagicMock()
    guild.get_channel.return_value = None

    with pytest.raises(DeliveryFailed):
        await DiscordPlatform(guild).send_channel_message(5, "hello")


@pytest.mark.asyncio
async def test_direct_message_failure_becomes_delivery_failed() -> None:
    member = MagicMock()
    member.send = AsyncMock(side_effect=_http_error())
    guild = MagicMock()
    guild.get_member.return_value = member

    with pytest.raises(DeliveryFailed):
        await DiscordPlatform(guild).send_direct_message(1, "hi")


@pytest.mark.asyncio
async def test_audit_source_stops_at_stale_entries() -> None:
    now = datetime.now(timezone.utc)
    entries = [
        SimpleNamespace(id=3, user=SimpleNamespace(id=10), target=SimpleNamespace(id=50), created_at=now, reason="a"),
        SimpleNamespace(id=2, user=None, target=SimpleNamespace(id=51), created_at=now, reason=None),
        SimpleNamespace(id=1, user=SimpleNamespace(id=11), target=SimpleNamespace(id=52), created_at=now - timedelta(minutes=5), reason=None),
    ]
    guild = MagicMock()
    guild.audit_logs = MagicMock(return_value=_AuditIterator(entries))

    found = await DiscordAuditLogSource(guild).fetch_recent_entries(EventKind.BAN, timedelta(seconds=10))

    assert [entry.id for entry in found] == [3]
    assert found[0].target_id == 50
    assert found[0].moderator_id == 10
    guild.audit_logs.assert_called_once_with(limit=5, action=discord.AuditLogAction.ban)
