from datetime import datetime, timezone

from modledger.bot.cogs.moderation_cmds import (
    NOT_NOTIFIED_SUFFIX,
    parse_user_ids,
    render_massban_outcome,
    render_outcome,
)
from modledger.datatypes.case_datatypes import Case, CaseType
from modledger.datatypes.moderation_datatypes import (
    BatchOutcome,
    CommandOutcome,
    MassbanOutcome,
    OutcomeStatus,
)


def _case(number: int = 4) -> Case:
    return Case(
        id=number,
        guild_id=1,
        case_number=number,
        type=CaseType.BAN,
        user_id=2,
        moderator_id=3,
        reason="spam",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_render_success_with_case_number() -> None:
    outcome = CommandOutcome(status=OutcomeStatus.SUCCESS, case=_case())

    assert render_outcome(outcome, "Banned user") == "Banned user (case #4)"


def test_render_success_not_notified() -> None:
    outcome = CommandOutcome(status=OutcomeStatus.SUCCESS, notified=False, case=_case())

    assert render_outcome(outcome, "Warned").endswith(NOT_NOTIFIED_SUFFIX)


def test_render_failure_uses_detail() -> None:
    assert render_outcome(CommandOutcome.denied("Cannot ban: insufficient permissions"), "x") == (
        "Cannot ban: insufficient permissions"
    )


def test_render_massban_lists_failures() -> None:
    outcome = MassbanOutcome(
        status=OutcomeStatus.SUCCESS,
        batch=BatchOutcome(requested=[1, 2, 3], succeeded=[1, 3], failed=[2]),
        reason="raid",
    )

    assert render_massban_outcome(outcome) == "Banned 2 user(s) for: raid\nFailed to ban: 2"


def test_render_massban_lists_unrecorded_bans() -> None:
    outcome = MassbanOutcome(
        status=OutcomeStatus.SUCCESS,
        batch=BatchOutcome(requested=[1, 2], succeeded=[1, 2], unrecorded=[2]),
        reason="raid",
    )

    assert render_massban_outcome(outcome) == "Banned 2 user(s) for: raid\nBanned but no case was recorded: 2"


def test_parse_user_ids_splits_and_validates() -> None:
    valid, invalid = parse_user_ids("123456789012345678, <@234567890123456789>  nope")

    assert valid == [123456789012345678, 234567890123456789]
    assert invalid == ["nope"]
