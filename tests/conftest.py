"""
Pytest configuration and fixtures for Modledger tests.

The fakes below stand in for Discord and the SQLite stores so the
moderation components can be exercised without a gateway connection.
"""

import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from modledger.configuration.moderation_settings import ModerationSettings  # noqa: E402
from modledger.datatypes.case_datatypes import Case, CaseNote, MuteState  # noqa: E402
from modledger.moderation.activity_log import ActivityLog  # noqa: E402
from modledger.moderation.audit_correlator import AuditCorrelator  # noqa: E402
from modledger.moderation.case_orchestrator import CaseOrchestrator  # noqa: E402
from modledger.moderation.errors import DeliveryFailed, MutationFailed  # noqa: E402
from modledger.moderation.event_suppressor import SelfActionSuppressor  # noqa: E402

GUILD_ID = 100000000000000001
OWNER_ID = 100000000000000002
MUTE_ROLE_ID = 100000000000000003
MESSAGE_CHANNEL_ID = 100000000000000004
LOG_CHANNEL_ID = 100000000000000005
ALERT_CHANNEL_ID = 100000000000000006

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeMonotonic:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Manually advanced aware UTC clock."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_member(user_id: int, rank: int = 1, owner_id: int = OWNER_ID) -> SimpleNamespace:
    """Member stand-in; ``rank`` plays the part of the top role position."""
    return SimpleNamespace(
        id=user_id,
        top_role=rank,
        guild=SimpleNamespace(id=GUILD_ID, owner_id=owner_id),
        mention=f"<@{user_id}>",
    )


class FakePlatform:
    """
    Records every call in ``calls`` as ``(operation, user_id)`` in order.

    Operations listed in ``failing`` as ``(operation, user_id)`` raise the
    matching collaborator error.
    """

    def __init__(self) -> None:
        self.guild_id = GUILD_ID
        self.guild_name = "Test Guild"
        self.members: dict[int, SimpleNamespace] = {}
        self.calls: list[tuple] = []
        self.failing: set[tuple[str, int]] = set()
        self.channel_messages: list[tuple[int, str | None, object]] = []
        self.direct_messages: list[tuple[int, str]] = []
        self.on_call = None

    def add_member(self, member: SimpleNamespace) -> SimpleNamespace:
        self.members[member.id] = member
        return member

    def get_member(self, user_id: int):
        return self.members.get(int(user_id))

    async def _mutate(self, operation: str, user_id: int) -> None:
        self.calls.append((operation, user_id))
        if self.on_call is not None:
            self.on_call(operation, user_id)
        if (operation, user_id) in self.failing:
            raise MutationFailed(f"{operation} of {user_id} failed")

    async def ban(self, user_id, reason=None):
        await self._mutate("ban", user_id)

    async def unban(self, user_id, reason=None):
        await self._mutate("unban", user_id)

    async def kick(self, user_id, reason=None):
        await self._mutate("kick", user_id)

    async def add_role(self, user_id, role_id, reason=None):
        await self._mutate("add_role", user_id)

    async def remove_role(self, user_id, role_id, reason=None):
        await self._mutate("remove_role", user_id)

    async def send_direct_message(self, user_id, text):
        self.calls.append(("dm", user_id))
        if ("dm", user_id) in self.failing:
            raise DeliveryFailed("DMs closed")
        self.direct_messages.append((user_id, text))

    async def send_channel_message(self, channel_id, text=None, *, embed=None):
        self.calls.append(("channel", channel_id))
        if ("channel", channel_id) in self.failing:
            raise DeliveryFailed("channel missing")
        self.channel_messages.append((channel_id, text, embed))


class FakeCaseStore:
    def __init__(self, guild_id: int = GUILD_ID) -> None:
        self.guild_id = guild_id
        self.cases: dict[int, Case] = {}

    async def create_case(self, *, type, user_id, moderator_id=None, reason=None, automatic=False,
                          audit_log_id=None, related_case_id=None):
        case_id = len(self.cases) + 1
        case = Case(
            id=case_id,
            guild_id=self.guild_id,
            case_number=case_id,
            type=type,
            user_id=user_id,
            moderator_id=moderator_id,
            reason=reason,
            created_at=BASE_TIME,
            automatic=automatic,
            audit_log_id=audit_log_id,
            related_case_id=related_case_id,
        )
        self.cases[case_id] = case
        return case

    async def add_note(self, case_id, moderator_id, body):
        self.cases[case_id].notes.append(CaseNote(body=body, moderator_id=moderator_id, created_at=BASE_TIME))

    async def get_case(self, case_id):
        return self.cases.get(case_id)

    async def find_by_case_number(self, case_number):
        return next((c for c in self.cases.values() if c.case_number == case_number), None)

    async def find_by_user_id(self, user_id):
        return [c for c in self.cases.values() if c.user_id == user_id]


class FakeMuteStore:
    def __init__(self, clock: FakeUtcClock) -> None:
        self._clock = clock
        self.mutes: dict[int, MuteState] = {}

    def _live(self, mute: MuteState) -> bool:
        return mute.expires_at is None or mute.expires_at > self._clock()

    async def find_live_mute(self, user_id):
        mute = self.mutes.get(user_id)
        return replace(mute) if mute is not None and self._live(mute) else None

    async def upsert_mute(self, user_id, expires_at=None):
        mute = self.mutes.get(user_id)
        if mute is None:
            mute = MuteState(user_id=user_id)
            self.mutes[user_id] = mute
        mute.expires_at = expires_at
        return replace(mute)

    async def set_case_id(self, user_id, case_id):
        self.mutes[user_id].case_id = case_id

    async def clear_mute(self, user_id):
        self.mutes.pop(user_id, None)

    async def get_live_mutes(self):
        return [replace(m) for m in self.mutes.values() if self._live(m)]

    async def get_expired(self, now=None):
        now = now or self._clock()
        return [replace(m) for m in self.mutes.values() if m.expires_at is not None and m.expires_at <= now]


class FakeAuditSource:
    def __init__(self) -> None:
        self.entries: list = []
        self.error: Exception | None = None

    async def fetch_recent_entries(self, kind, within):
        if self.error is not None:
            raise self.error
        return list(self.entries)


@pytest.fixture()
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture()
def utc_clock() -> FakeUtcClock:
    return FakeUtcClock()


@pytest.fixture()
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture()
def case_store() -> FakeCaseStore:
    return FakeCaseStore()


@pytest.fixture()
def mute_store(utc_clock) -> FakeMuteStore:
    return FakeMuteStore(utc_clock)


@pytest.fixture()
def audit_source() -> FakeAuditSource:
    return FakeAuditSource()


@pytest.fixture()
def settings() -> ModerationSettings:
    return ModerationSettings(
        {
            "dm_on_warn": True,
            "dm_on_mute": True,
            "dm_on_kick": True,
            "dm_on_ban": True,
            "message_channel": MESSAGE_CHANNEL_ID,
            "mute_role": MUTE_ROLE_ID,
            "alert_on_rejoin": True,
            "alert_channel": ALERT_CHANNEL_ID,
        }
    )


@pytest.fixture()
def moderator(platform) -> SimpleNamespace:
    return platform.add_member(make_member(200000000000000001, rank=10))


@pytest.fixture()
def target(platform) -> SimpleNamespace:
    return platform.add_member(make_member(300000000000000001, rank=1))


@pytest.fixture()
def orchestrator(platform, case_store, mute_store, audit_source, settings, monotonic, utc_clock) -> CaseOrchestrator:
    return CaseOrchestrator(
        platform=platform,
        cases=case_store,
        mutes=mute_store,
        correlator=AuditCorrelator(audit_source, window_seconds=10, clock=utc_clock),
        activity_log=ActivityLog(platform, None, clock=monotonic),
        settings=settings,
        suppressor=SelfActionSuppressor(clock=monotonic, default_ttl=15),
        clock=utc_clock,
    )
