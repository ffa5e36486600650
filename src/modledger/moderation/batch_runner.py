"""
Massban workflow.

A massban is all-or-nothing up to the first mutation (limit check,
authority pre-check, reason confirmation) and best-effort afterwards: every
target is banned independently and failures are collected instead of
aborting the batch.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Sequence

from modledger.datatypes.case_datatypes import CaseType
from modledger.datatypes.moderation_datatypes import (
    BatchOutcome,
    EventKind,
    MassbanOutcome,
    OutcomeStatus,
)
from modledger.moderation.activity_log import LogType
from modledger.moderation.case_orchestrator import CaseOrchestrator
from modledger.moderation.confirmation import ConfirmationRegistry
from modledger.moderation.errors import AuthorityDenied, ConfirmationTimeout, ModledgerError, MutationFailed
from modledger.util.logger import get_logger

logger = get_logger("batch_runner")

DEFAULT_MASSBAN_LIMIT = 100
MASSBAN_SUPPRESSION_TTL = 120.0

Reporter = Callable[[MassbanOutcome], Awaitable[None]]


def unique_ids(target_ids: Sequence[int]) -> list[int]:
    """Target ids as ints, first occurrence order, duplicates removed."""
    return list(dict.fromkeys(int(user_id) for user_id in target_ids))


class MassbanRunner:
    """
    Bans many users with one reason, one summary log entry and per-user cases.

    Args:
        orchestrator: Provides the platform, stores, ledgers and authority check.
        confirmations: Registry used to collect the ban reason.
        limit: Maximum number of targets per invocation.
        suppression_ttl: TTL of the echo suppressions; longer than usual since
            the ban events of a big batch can lag well behind the API calls.
        confirmation_timeout: Seconds to wait for the reason.
    """

    def __init__(
        self,
        orchestrator: CaseOrchestrator,
        confirmations: ConfirmationRegistry | None = None,
        limit: int = DEFAULT_MASSBAN_LIMIT,
        suppression_ttl: float = MASSBAN_SUPPRESSION_TTL,
        confirmation_timeout: float = 60.0,
    ) -> None:
        self.orchestrator = orchestrator
        self.confirmations = confirmations or ConfirmationRegistry()
        self.limit = limit
        self.suppression_ttl = suppression_ttl
        self.confirmation_timeout = confirmation_timeout

    def validate(self, requester: Any, target_ids: Sequence[int]) -> MassbanOutcome | None:
        """
        Run the all-or-nothing pre-checks.

        Returns:
            MassbanOutcome | None: A terminal outcome if the batch must not
            run, otherwise None.
        """
        requested = unique_ids(target_ids)
        if not requested:
            return MassbanOutcome(status=OutcomeStatus.CANCELLED, detail="No users given")
        if len(requested) > self.limit:
            return MassbanOutcome(
                status=OutcomeStatus.DENIED,
                batch=BatchOutcome(requested=requested),
                detail=f"Can only massban max {self.limit} users at once",
            )
        try:
            self._check_authority(requester, requested)
        except AuthorityDenied as exc:
            return MassbanOutcome(status=OutcomeStatus.DENIED, batch=BatchOutcome(requested=requested), detail=str(exc))
        return None

    def _check_authority(self, requester: Any, target_ids: Sequence[int]) -> None:
        platform = self.orchestrator.platform
        for user_id in target_ids:
            member = platform.get_member(user_id)
            if member is not None and not self.orchestrator.check_authority(requester, member):
                raise AuthorityDenied("Cannot massban one or more users: insufficient permissions")

    async def run_massban(self, requester: Any, target_ids: Sequence[int], reason: str) -> MassbanOutcome:
        """
        Ban every target with ``reason``.

        Pre-checks run again here so a confirmation that sat pending while
        roles changed cannot ban someone the requester may no longer touch.
        """
        rejected = self.validate(requester, target_ids)
        if rejected is not None:
            return rejected

        requested = unique_ids(target_ids)
        orchestrator = self.orchestrator

        for user_id in requested:
            orchestrator.suppress(EventKind.BAN, user_id, LogType.MEMBER_BAN, ttl=self.suppression_ttl)

        batch = BatchOutcome(requested=requested)
        case_reason = f"Mass ban: {reason}"
        for user_id in requested:
            try:
                await orchestrator.platform.ban(user_id, reason=case_reason)
            except MutationFailed as exc:
                logger.warning("[MASSBAN] Ban of %s failed: %s", user_id, exc)
                batch.failed.append(user_id)
                continue

            # The ban stands even if its case cannot be written
            batch.succeeded.append(user_id)
            try:
                await orchestrator.record_case(
                    CaseType.BAN,
                    user_id,
                    requester.id,
                    case_reason,
                    post_in_case_log=False,
                )
            except Exception as exc:
                logger.error("[MASSBAN] Banned %s but could not record the case: %s", user_id, exc)
                batch.unrecorded.append(user_id)

        if not batch.succeeded:
            logger.warning("[MASSBAN] All %d bans failed in guild %s", len(requested), orchestrator.platform.guild_id)
            return MassbanOutcome(
                status=OutcomeStatus.MUTATION_FAILED,
                batch=batch,
                reason=reason,
                detail="All bans failed. Make sure the IDs are valid.",
            )

        await orchestrator.activity_log.record(
            LogType.MASSBAN,
            {"mod": requester.id, "count": len(batch.succeeded)},
        )
        logger.info(
            "[MASSBAN] %s banned %d users (%d failed) in guild %s",
            requester.id,
            len(batch.succeeded),
            len(batch.failed),
            orchestrator.platform.guild_id,
        )
        return MassbanOutcome(status=OutcomeStatus.SUCCESS, batch=batch, reason=reason)

    def request_massban(
        self,
        requester: Any,
        target_ids: Sequence[int],
        channel_id: int,
        reporter: Reporter,
    ) -> MassbanOutcome | None:
        """
        Validate the batch and wait for the requester's reason.

        The reason is the requester's next message in ``channel_id``; the
        message listener delivers it through the confirmation registry.
        ``reporter`` receives the final outcome.

        Returns:
            MassbanOutcome | None: An immediate terminal outcome when
            validation fails, or None if the confirmation is now pending.
        """
        rejected = self.validate(requester, target_ids)
        if rejected is not None:
            return rejected

        requested = unique_ids(target_ids)

        async def on_reply(reason: str) -> None:
            try:
                outcome = await self.run_massban(requester, requested, reason)
            except Exception:
                logger.exception("[MASSBAN] Batch for %s stopped on an unexpected error", requester.id)
                outcome = MassbanOutcome(
                    status=OutcomeStatus.MUTATION_FAILED,
                    batch=BatchOutcome(requested=requested),
                    reason=reason,
                    detail="Massban stopped on an unexpected error",
                )
            await reporter(outcome)

        async def on_abort(error: ModledgerError) -> None:
            detail = "Timed out waiting for a reason" if isinstance(error, ConfirmationTimeout) else "Cancelled"
            await reporter(
                MassbanOutcome(
                    status=OutcomeStatus.CANCELLED,
                    batch=BatchOutcome(requested=requested),
                    detail=detail,
                )
            )

        self.confirmations.open(channel_id, requester.id, on_reply, on_abort, self.confirmation_timeout)
        return None
