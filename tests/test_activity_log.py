import pytest

from modledger.moderation.activity_log import ActivityLog, LogType, format_entry

from conftest import LOG_CHANNEL_ID


def test_format_entry_mentions_users() -> None:
    line = format_entry(LogType.MASSBAN, {"mod": 5, "count": 3})

    assert line == "<@!5> (`5`) massbanned 3 users"


def test_format_entry_unknown_moderator() -> None:
    assert format_entry(LogType.MEMBER_BAN, {"mod": None, "user": 7}) == "Unknown banned <@!7> (`7`)"


@pytest.mark.asyncio
async def test_record_posts_to_log_channel(platform, monotonic) -> None:
    log = ActivityLog(platform, LOG_CHANNEL_ID, clock=monotonic)

    assert await log.record(LogType.MEMBER_KICK, {"mod": 1, "user": 2}) is True
    assert platform.channel_messages == [(LOG_CHANNEL_ID, "<@!1> (`1`) kicked <@!2> (`2`)", None)]


@pytest.mark.asyncio
async def test_ignored_entry_is_swallowed_once(platform, monotonic) -> None:
    log = ActivityLog(platform, LOG_CHANNEL_ID, clock=monotonic)
    log.ignore_next(LogType.MEMBER_BAN, 2)

    assert await log.record(LogType.MEMBER_BAN, {"user": 2}, ignore_id=2) is False
    assert await log.record(LogType.MEMBER_BAN, {"user": 2}, ignore_id=2) is True
    assert len(platform.channel_messages) == 1


@pytest.mark.asyncio
async def test_ignore_mark_expires(platform, monotonic) -> None:
    log = ActivityLog(platform, None, clock=monotonic)
    log.ignore_next(LogType.MEMBER_UNBAN, 2, ttl=10)
    monotonic.advance(10)

    assert not log.is_ignored(LogType.MEMBER_UNBAN, 2)


@pytest.mark.asyncio
async def test_channel_failure_does_not_raise(platform, monotonic) -> None:
    platform.failing.add(("channel", LOG_CHANNEL_ID))
    log = ActivityLog(platform, LOG_CHANNEL_ID, clock=monotonic)

    assert await log.record(LogType.MEMBER_WARN, {"mod": 1, "user": 2}) is True


@pytest.mark.asyncio
async def test_consumed_mark_no_longer_swallows_entries(platform, monotonic) -> None:
    log = ActivityLog(platform, LOG_CHANNEL_ID, clock=monotonic)
    log.ignore_next(LogType.MEMBER_KICK, 2)

    assert log.consume_ignore(LogType.MEMBER_KICK, 2) is True
    assert log.consume_ignore(LogType.MEMBER_KICK, 2) is False
    assert await log.record(LogType.MEMBER_KICK, {"mod": 1, "user": 2}, ignore_id=2) is True
    assert len(platform.channel_messages) == 1
