import asyncio
from unittest.mock import AsyncMock

import pytest

from modledger.datatypes.case_datatypes import CaseType
from modledger.datatypes.moderation_datatypes import EventKind, ModerationEvent, OutcomeStatus
from modledger.moderation.activity_log import LogType
from modledger.moderation.batch_runner import MassbanRunner
from modledger.moderation.confirmation import ConfirmationRegistry

from conftest import make_member

USER_A = 600000000000000001
USER_B = 600000000000000002
USER_C = 600000000000000003
CHANNEL_ID = 700000000000000001


@pytest.fixture()
def runner(orchestrator) -> MassbanRunner:
    orchestrator.activity_log.record = AsyncMock(return_value=True)
    return MassbanRunner(orchestrator, ConfirmationRegistry(), limit=100, confirmation_timeout=5)


@pytest.mark.asyncio
async def test_partial_failure_partitions_targets(runner, platform, case_store, moderator) -> None:
    platform.failing.add(("ban", USER_B))

    outcome = await runner.run_massban(moderator, [USER_A, USER_B, USER_C], "raid")

    assert outcome.status is OutcomeStatus.SUCCESS
    assert outcome.batch.succeeded == [USER_A, USER_C]
    assert outcome.batch.failed == [USER_B]
    assert [case.user_id for case in case_store.cases.values()] == [USER_A, USER_C]
    assert all(case.type is CaseType.BAN for case in case_store.cases.values())
    runner.orchestrator.activity_log.record.assert_awaited_once_with(
        LogType.MASSBAN, {"mod": moderator.id, "count": 2}
    )


@pytest.mark.asyncio
async def test_precheck_denial_mutates_nothing(runner, platform, case_store, moderator) -> None:
    senior = platform.add_member(make_member(USER_B, rank=99))

    outcome = await runner.run_massban(moderator, [USER_A, senior.id, USER_C], "raid")

    assert outcome.status is OutcomeStatus.DENIED
    assert platform.calls == []
    assert case_store.cases == {}


@pytest.mark.asyncio
async def test_limit_is_enforced(orchestrator, platform, moderator) -> None:
    runner = MassbanRunner(orchestrator, limit=2)

    outcome = await runner.run_massban(moderator, [USER_A, USER_B, USER_C], "raid")

    assert outcome.status is OutcomeStatus.DENIED
    assert platform.calls == []


@pytest.mark.asyncio
async def test_all_failures_write_no_log(runner, platform, moderator) -> None:
    platform.failing.update({("ban", USER_A), ("ban", USER_B)})

    outcome = await runner.run_massban(moderator, [USER_A, USER_B], "raid")

    assert outcome.status is OutcomeStatus.MUTATION_FAILED
    assert outcome.batch.failed == [USER_A, USER_B]
    runner.orchestrator.activity_log.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_duplicate_ids_are_banned_once(runner, platform, moderator) -> None:
    outcome = await runner.run_massban(moderator, [USER_A, USER_A], "raid")

    assert outcome.batch.succeeded == [USER_A]
    assert platform.calls == [("ban", USER_A)]


@pytest.mark.asyncio
async def test_ban_echoes_suppressed_with_long_ttl(runner, orchestrator, case_store, moderator, monotonic) -> None:
    await runner.run_massban(moderator, [USER_A, USER_C], "raid")
    monotonic.advance(100)

    for user_id in (USER_A, USER_C):
        assert await orchestrator.handle_event(ModerationEvent(kind=EventKind.BAN, user_id=user_id)) is None
    assert len(case_store.cases) == 2


@pytest.mark.asyncio
async def test_empty_request_is_cancelled(runner, moderator) -> None:
    outcome = runner.request_massban(moderator, [], CHANNEL_ID, AsyncMock())

    assert outcome.status is OutcomeStatus.CANCELLED


@pytest.mark.asyncio
async def test_reply_supplies_reason_and_runs_batch(runner, platform, moderator) -> None:
    reporter = AsyncMock()

    assert runner.request_massban(moderator, [USER_A], CHANNEL_ID, reporter) is None
    assert platform.calls == []

    handled = await runner.confirmations.resolve(CHANNEL_ID, moderator.id, "raid")

    assert handled is True
    outcome = reporter.await_args.args[0]
    assert outcome.status is OutcomeStatus.SUCCESS
    assert outcome.reason == "raid"
    assert platform.calls == [("ban", USER_A)]


@pytest.mark.asyncio
async def test_cancel_reply_aborts(runner, platform, moderator) -> None:
    reporter = AsyncMock()
    runner.request_massban(moderator, [USER_A], CHANNEL_ID, reporter)

    await runner.confirmations.resolve(CHANNEL_ID, moderator.id, "cancel")

    outcome = reporter.await_args.args[0]
    assert outcome.status is OutcomeStatus.CANCELLED
    assert outcome.detail == "Cancelled"
    assert platform.calls == []


@pytest.mark.asyncio
async def test_timeout_aborts(orchestrator, platform, moderator) -> None:
    runner = MassbanRunner(orchestrator, ConfirmationRegistry(), confirmation_timeout=0.01)
    reporter = AsyncMock()
    runner.request_massban(moderator, [USER_A], CHANNEL_ID, reporter)

    await asyncio.sleep(0.1)

    outcome = reporter.await_args.args[0]
    assert outcome.status is OutcomeStatus.CANCELLED
    assert outcome.detail == "Timed out waiting for a reason"
    assert not runner.confirmations.is_pending(CHANNEL_ID, moderator.id)
    assert platform.calls == []


@pytest.mark.asyncio
async def test_case_write_failure_does_not_stop_batch(runner, platform, case_store, moderator) -> None:
    create_case = case_store.create_case

    async def flaky_create_case(**fields):
        if fields["user_id"] == USER_A:
            raise RuntimeError("database is locked")
        return await create_case(**fields)

    case_store.create_case = flaky_create_case

    outcome = await runner.run_massban(moderator, [USER_A, USER_B, USER_C], "raid")

    assert outcome.status is OutcomeStatus.SUCCESS
    assert platform.calls == [("ban", USER_A), ("ban", USER_B), ("ban", USER_C)]
    assert outcome.batch.succeeded == [USER_A, USER_B, USER_C]
    assert outcome.batch.unrecorded == [USER_A]
    assert [case.user_id for case in case_store.cases.values()] == [USER_B, USER_C]
    runner.orchestrator.activity_log.record.assert_awaited_once_with(
        LogType.MASSBAN, {"mod": moderator.id, "count": 3}
    )


@pytest.mark.asyncio
async def test_unexpected_batch_error_is_reported(runner, moderator) -> None:
    reporter = AsyncMock()
    runner.run_massban = AsyncMock(side_effect=RuntimeError("boom"))
    runner.request_massban(moderator, [USER_A], CHANNEL_ID, reporter)

    await runner.confirmations.resolve(CHANNEL_ID, moderator.id, "raid")

    outcome = reporter.await_args.args[0]
    assert outcome.status is OutcomeStatus.MUTATION_FAILED
    assert outcome.detail == "Massban stopped on an unexpected error"


@pytest.mark.asyncio
async def test_duplicates_do_not_count_against_limit(orchestrator, platform, moderator) -> None:
    runner = MassbanRunner(orchestrator, limit=2)

    outcome = await runner.run_massban(moderator, [USER_A, USER_B, USER_A, USER_B], "raid")

    assert outcome.status is OutcomeStatus.SUCCESS
    assert platform.calls == [("ban", USER_A), ("ban", USER_B)]
