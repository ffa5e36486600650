"""
Attribution of observed events to the guild audit log.

Discord writes audit log entries asynchronously, so an entry for a ban may
not exist yet when ``on_member_ban`` fires. A missing match means the actor
is unknown, not that nobody acted.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from modledger.datatypes.moderation_datatypes import AuditMatch, EventKind
from modledger.platform.base import AuditLogSource
from modledger.util.logger import get_logger

logger = get_logger("audit_correlator")

DEFAULT_WINDOW_SECONDS = 10.0


class AuditCorrelator:
    """
    Best-effort lookup of the audit entry behind an observed event.

    Args:
        source: Fetches recent audit entries of a given kind.
        window_seconds: Entries older than this are treated as unrelated.
        clock: Returns the current aware UTC time, injectable for tests.
    """

    def __init__(
        self,
        source: AuditLogSource,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._source = source
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def correlate(self, kind: EventKind, user_id: int) -> AuditMatch | None:
        """
        Find the most recent audit entry of ``kind`` targeting ``user_id``.

        Returns:
            AuditMatch | None: The match, or None if the entry is missing,
            stale, or the audit log could not be read.
        """
        try:
            entries = await self._source.fetch_recent_entries(kind, self.window)
        except Exception as exc:
            logger.warning(
                "[AUDIT CORRELATOR] Could not read audit log for %s of user %s: %s",
                kind.value,
                user_id,
                exc,
            )
            return None

        oldest_allowed = self._clock() - self.window
        candidates = [
            entry
            for entry in entries
            if entry.kind is kind
            and entry.target_id == user_id
            and entry.created_at >= oldest_allowed
        ]
        if not candidates:
            logger.debug("[AUDIT CORRELATOR] No %s entry found for user %s", kind.value, user_id)
            return None

        entry = max(candidates, key=lambda e: e.created_at)
        return AuditMatch(moderator_id=entry.moderator_id, audit_entry_id=entry.id, reason=entry.reason)
