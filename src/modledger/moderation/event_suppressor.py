"""
Short-lived ledger of events the bot caused itself.

When the bot bans, unbans or kicks someone the gateway echoes the same event
back. Registering a suppression right before the mutation lets the event
handler recognise the echo and skip creating a second, automatic case.

Entries expire lazily: they are checked (and pruned) on lookup, there is no
background sweep.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, List, TypeVar

from modledger.datatypes.moderation_datatypes import EventKind, SUPPRESSIBLE_EVENTS
from modledger.util.logger import get_logger

logger = get_logger("event_suppressor")

DEFAULT_TTL_SECONDS = 15.0

K = TypeVar("K", bound=Hashable)


@dataclass(slots=True)
class IgnoredEntry(Generic[K]):
    """One pending suppression. Live while ``now < expires_at``."""

    kind: K
    user_id: int
    expires_at: float


class TimedIgnoreLedger(Generic[K]):
    """
    List of ``(kind, user_id)`` markers with per-entry expiry.

    Duplicate registrations for the same pair are allowed and behave
    interchangeably: each matching consumption removes exactly one.

    Args:
        clock: Monotonic time source in seconds, injectable for tests.
        default_ttl: TTL used when ``register`` is called without one.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        default_ttl: float = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._clock = clock
        self.default_ttl = default_ttl
        self._entries: List[IgnoredEntry[K]] = []

    def __len__(self) -> int:
        self._prune()
        return len(self._entries)

    def _prune(self) -> None:
        now = self._clock()
        self._entries = [entry for entry in self._entries if entry.expires_at > now]

    def register(self, kind: K, user_id: int, ttl: float | None = None) -> IgnoredEntry[K]:
        """Add a marker for ``(kind, user_id)`` that lives for ``ttl`` seconds."""
        ttl = self.default_ttl if ttl is None else ttl
        entry = IgnoredEntry(kind=kind, user_id=int(user_id), expires_at=self._clock() + ttl)
        self._entries.append(entry)
        return entry

    def is_ignored(self, kind: K, user_id: int) -> bool:
        """Return True if a live marker exists for the pair."""
        self._prune()
        user_id = int(user_id)
        return any(entry.kind == kind and entry.user_id == user_id for entry in self._entries)

    def consume(self, kind: K, user_id: int) -> bool:
        """Remove one live marker for the pair. Returns False (no-op) when none exists."""
        self._prune()
        user_id = int(user_id)
        for index, entry in enumerate(self._entries):
            if entry.kind == kind and entry.user_id == user_id:
                del self._entries[index]
                return True
        return False

    def clear(self) -> None:
        self._entries.clear()


class SelfActionSuppressor(TimedIgnoreLedger[EventKind]):
    """Per-guild ledger of ban, unban and kick events the bot itself initiated."""

    def register(self, kind: EventKind, user_id: int, ttl: float | None = None) -> IgnoredEntry[EventKind]:
        if kind not in SUPPRESSIBLE_EVENTS:
            raise ValueError(f"Events of kind {kind} cannot be suppressed")
        entry = super().register(kind, user_id, ttl)
        logger.debug(
            "[SUPPRESSOR] Ignoring next %s for user %s (ttl=%.1fs)",
            kind.value,
            user_id,
            entry.expires_at - self._clock(),
        )
        return entry

    def is_suppressed(self, kind: EventKind, user_id: int) -> bool:
        return self.is_ignored(kind, user_id)
