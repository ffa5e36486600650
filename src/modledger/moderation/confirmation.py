"""
Pending confirmations keyed by ``(channel_id, requester_id)``.

A command that needs a follow-up answer registers a token here and returns.
The message listener hands every incoming message to :meth:`resolve`; the
first message from the requester in that channel completes the token.
Tokens left unanswered are aborted by a timer.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Tuple

from modledger.moderation.errors import ConfirmationCancelled, ConfirmationTimeout, ModledgerError
from modledger.util.logger import get_logger

logger = get_logger("confirmation")

CANCEL_WORDS = frozenset({"cancel"})

ReplyCallback = Callable[[str], Awaitable[None]]
AbortCallback = Callable[[ModledgerError], Awaitable[None]]


@dataclass(eq=False)
class PendingConfirmation:
    """One outstanding question waiting for the requester's reply."""

    channel_id: int
    requester_id: int
    on_reply: ReplyCallback
    on_abort: AbortCallback
    timeout_handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def key(self) -> Tuple[int, int]:
        return (self.channel_id, self.requester_id)


class ConfirmationRegistry:
    """Tracks at most one pending confirmation per requester and channel."""

    def __init__(self) -> None:
        self._pending: Dict[Tuple[int, int], PendingConfirmation] = {}
        self._tasks: set[asyncio.Task] = set()

    def is_pending(self, channel_id: int, requester_id: int) -> bool:
        return (channel_id, requester_id) in self._pending

    def open(
        self,
        channel_id: int,
        requester_id: int,
        on_reply: ReplyCallback,
        on_abort: AbortCallback,
        timeout: float,
    ) -> PendingConfirmation:
        """
        Register a confirmation and arm its timeout.

        A previous confirmation for the same key is aborted as cancelled.
        """
        previous = self._pending.pop((channel_id, requester_id), None)
        if previous is not None:
            self._finish(previous, previous.on_abort(ConfirmationCancelled("Superseded by a newer request")))

        pending = PendingConfirmation(channel_id, requester_id, on_reply, on_abort)
        loop = asyncio.get_running_loop()
        pending.timeout_handle = loop.call_later(timeout, self._expire, pending)
        self._pending[pending.key] = pending
        logger.debug("[CONFIRMATION] Waiting for reply from %s in channel %s", requester_id, channel_id)
        return pending

    def _finish(self, pending: PendingConfirmation, callback: Awaitable[None]) -> asyncio.Future:
        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        task = asyncio.ensure_future(callback)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[CONFIRMATION] Confirmation handler failed", exc_info=task.exception())

    def _expire(self, pending: PendingConfirmation) -> None:
        if self._pending.get(pending.key) is not pending:
            return
        del self._pending[pending.key]
        logger.info("[CONFIRMATION] Confirmation for %s in %s timed out", pending.requester_id, pending.channel_id)
        self._finish(pending, pending.on_abort(ConfirmationTimeout("No reply received in time")))

    async def resolve(self, channel_id: int, author_id: int, content: str) -> bool:
        """
        Offer an incoming message to the registry.

        Returns:
            bool: True if the message answered a pending confirmation.
        """
        pending = self._pending.pop((channel_id, author_id), None)
        if pending is None:
            return False

        reply = (content or "").strip()
        if not reply or reply.lower() in CANCEL_WORDS:
            task = self._finish(pending, pending.on_abort(ConfirmationCancelled("Cancelled by requester")))
        else:
            task = self._finish(pending, pending.on_reply(reply))
        await asyncio.wait([task])
        return True

    async def shutdown(self) -> None:
        """Abort all pending confirmations and wait for their handlers."""
        for pending in list(self._pending.values()):
            self._finish(pending, pending.on_abort(ConfirmationCancelled("Bot is shutting down")))
        self._pending.clear()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
