import pytest

from modledger.datatypes.moderation_datatypes import EventKind
from modledger.moderation.event_suppressor import SelfActionSuppressor, TimedIgnoreLedger


def test_registered_event_is_suppressed_once(monotonic) -> None:
    suppressor = SelfActionSuppressor(clock=monotonic)
    suppressor.register(EventKind.BAN, 42)

    assert suppressor.is_suppressed(EventKind.BAN, 42)
    assert suppressor.consume(EventKind.BAN, 42) is True
    assert not suppressor.is_suppressed(EventKind.BAN, 42)


def test_kind_and_user_must_both_match(monotonic) -> None:
    suppressor = SelfActionSuppressor(clock=monotonic)
    suppressor.register(EventKind.BAN, 42)

    assert not suppressor.is_suppressed(EventKind.UNBAN, 42)
    assert not suppressor.is_suppressed(EventKind.BAN, 43)


def test_entry_expires_exactly_at_ttl(monotonic) -> None:
    suppressor = SelfActionSuppressor(clock=monotonic, default_ttl=15)
    suppressor.register(EventKind.KICK, 7)

    monotonic.advance(14.5)
    assert suppressor.is_suppressed(EventKind.KICK, 7)

    monotonic.advance(0.5)
    assert not suppressor.is_suppressed(EventKind.KICK, 7)
    assert len(suppressor) == 0


def test_duplicate_registrations_each_consume_one(monotonic) -> None:
    suppressor = SelfActionSuppressor(clock=monotonic)
    suppressor.register(EventKind.BAN, 1)
    suppressor.register(EventKind.BAN, 1)

    assert suppressor.consume(EventKind.BAN, 1)
    assert suppressor.is_suppressed(EventKind.BAN, 1)
    assert suppressor.consume(EventKind.BAN, 1)
    assert not suppressor.consume(EventKind.BAN, 1)


def test_consume_missing_entry_is_noop(monotonic) -> None:
    suppressor = SelfActionSuppressor(clock=monotonic)

    assert suppressor.consume(EventKind.UNBAN, 5) is False
    assert len(suppressor) == 0


def test_custom_ttl_overrides_default(monotonic) -> None:
    suppressor = SelfActionSuppressor(clock=monotonic, default_ttl=15)
    suppressor.register(EventKind.BAN, 9, ttl=120)

    monotonic.advance(60)

    assert suppressor.is_suppressed(EventKind.BAN, 9)


def test_member_join_cannot_be_suppressed(monotonic) -> None:
    suppressor = SelfActionSuppressor(clock=monotonic)

    with pytest.raises(ValueError):
        suppressor.register(EventKind.MEMBER_JOIN, 1)


def test_generic_ledger_accepts_any_hashable_kind(monotonic) -> None:
    ledger: TimedIgnoreLedger[str] = TimedIgnoreLedger(clock=monotonic, default_ttl=5)
    ledger.register("member_role_add", 3)

    assert ledger.is_ignored("member_role_add", 3)
    ledger.clear()
    assert not ledger.is_ignored("member_role_add", 3)
