"""
Server activity log.

Records what moderators did (bans, mutes, massbans, manual cases) to the
logger and, when configured, to a log channel. Commands that are about to
cause an event the log would otherwise record on its own call
``ignore_next`` first so the entry is written once, by the command.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Callable, Dict

from modledger.moderation.errors import DeliveryFailed
from modledger.moderation.event_suppressor import TimedIgnoreLedger
from modledger.platform.base import ModerationPlatform
from modledger.util.logger import get_logger

logger = get_logger("activity_log")


class LogType(Enum):
    MEMBER_WARN = "member_warn"
    MEMBER_MUTE = "member_mute"
    MEMBER_UNMUTE = "member_unmute"
    MEMBER_TIMED_UNMUTE = "member_timed_unmute"
    MEMBER_KICK = "member_kick"
    MEMBER_BAN = "member_ban"
    MEMBER_SOFTBAN = "member_softban"
    MEMBER_FORCEBAN = "member_forceban"
    MEMBER_UNBAN = "member_unban"
    MEMBER_JOIN_WITH_PRIOR_RECORDS = "member_join_with_prior_records"
    MASSBAN = "massban"
    CASE_CREATE = "case_create"
    CASE_UPDATE = "case_update"

    def __str__(self) -> str:
        return self.value


LOG_FORMATS: Dict[LogType, str] = {
    LogType.MEMBER_WARN: "{mod} warned {user}",
    LogType.MEMBER_MUTE: "{mod} muted {user}",
    LogType.MEMBER_UNMUTE: "{mod} unmuted {user}",
    LogType.MEMBER_TIMED_UNMUTE: "Mute of {user} expired",
    LogType.MEMBER_KICK: "{mod} kicked {user}",
    LogType.MEMBER_BAN: "{mod} banned {user}",
    LogType.MEMBER_SOFTBAN: "{mod} softbanned {user}",
    LogType.MEMBER_FORCEBAN: "{mod} forcebanned {user}",
    LogType.MEMBER_UNBAN: "{mod} unbanned {user}",
    LogType.MEMBER_JOIN_WITH_PRIOR_RECORDS: "{user} joined with {count} prior record(s)",
    LogType.MASSBAN: "{mod} massbanned {count} users",
    LogType.CASE_CREATE: "{mod} manually created {case_type} case #{case_number} on {user}",
    LogType.CASE_UPDATE: "{mod} added a note to case #{case_number}",
}


def _mention(user_id: Any) -> str:
    return f"<@!{user_id}> (`{user_id}`)" if user_id else "Unknown"


def format_entry(log_type: LogType, payload: Dict[str, Any]) -> str:
    """Render a payload into a single log line; missing fields show as ``?``."""
    values = {key: payload.get(key, "?") for key in ("count", "case_type", "case_number")}
    values["mod"] = _mention(payload.get("mod"))
    values["user"] = _mention(payload.get("user"))
    return LOG_FORMATS[log_type].format(**values)


class ActivityLog:
    """
    Per-guild activity log sink.

    Args:
        platform: Used to post entries to the log channel.
        log_channel_id: Channel entries are posted to; None logs to file only.
        clock: Monotonic clock for the ignore ledger.
    """

    def __init__(
        self,
        platform: ModerationPlatform | None = None,
        log_channel_id: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._platform = platform
        self.log_channel_id = log_channel_id
        self._ignored: TimedIgnoreLedger[LogType] = TimedIgnoreLedger(clock=clock)

    def ignore_next(self, log_type: LogType, user_id: int, ttl: float | None = None) -> None:
        """Skip the next ``log_type`` entry recorded for ``user_id``."""
        self._ignored.register(log_type, user_id, ttl)

    def is_ignored(self, log_type: LogType, user_id: int) -> bool:
        return self._ignored.is_ignored(log_type, user_id)

    def consume_ignore(self, log_type: LogType, user_id: int) -> bool:
        """Drop the ``ignore_next`` mark for an entry that will never be recorded."""
        return self._ignored.consume(log_type, user_id)

    async def record(self, log_type: LogType, payload: Dict[str, Any], ignore_id: int | None = None) -> bool:
        """
        Write an entry unless it was marked ignored.

        Args:
            log_type: Kind of entry.
            payload: Fields for the entry (``mod``, ``user``, ``count``...).
            ignore_id: User the entry is about, checked against ``ignore_next`` marks.

        Returns:
            bool: False when the entry was swallowed by an ignore mark.
        """
        if ignore_id is not None and self._ignored.consume(log_type, ignore_id):
            logger.debug("[ACTIVITY LOG] Skipped ignored %s entry for %s", log_type.value, ignore_id)
            return False

        line = format_entry(log_type, payload)
        logger.info("[ACTIVITY LOG] %s", line)

        if self._platform is not None and self.log_channel_id:
            try:
                await self._platform.send_channel_message(self.log_channel_id, line)
            except DeliveryFailed as exc:
                logger.warning("[ACTIVITY LOG] Could not post to log channel: %s", exc)
        return True
