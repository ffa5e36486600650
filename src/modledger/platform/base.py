"""
Collaborator interfaces consumed by the moderation core.

The orchestrator, notifier and batch runner only talk to these protocols;
the Discord adapter and the SQLite repositories are the production
implementations, the test suite ships in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Protocol, Sequence

from modledger.datatypes.case_datatypes import Case, CaseType, MuteState
from modledger.datatypes.moderation_datatypes import AuditEntry, EventKind


class ModerationPlatform(Protocol):
    """Mutation and messaging surface of one guild.

    Mutations raise :class:`MutationFailed`, sends raise :class:`DeliveryFailed`.
    """

    @property
    def guild_id(self) -> int: ...

    @property
    def guild_name(self) -> str: ...

    def get_member(self, user_id: int) -> Any | None: ...

    async def ban(self, user_id: int, reason: str | None = None) -> None: ...

    async def unban(self, user_id: int, reason: str | None = None) -> None: ...

    async def kick(self, user_id: int, reason: str | None = None) -> None: ...

    async def add_role(self, user_id: int, role_id: int, reason: str | None = None) -> None: ...

    async def remove_role(self, user_id: int, role_id: int, reason: str | None = None) -> None: ...

    async def send_direct_message(self, user_id: int, text: str) -> None: ...

    async def send_channel_message(self, channel_id: int, text: str | None = None, *, embed: Any = None) -> None: ...


class AuditLogSource(Protocol):
    async def fetch_recent_entries(self, kind: EventKind, within: timedelta) -> Sequence[AuditEntry]: ...


class CaseStore(Protocol):
    async def create_case(
        self,
        *,
        type: CaseType,
        user_id: int,
        moderator_id: int | None = None,
        reason: str | None = None,
        automatic: bool = False,
        audit_log_id: int | None = None,
        related_case_id: int | None = None,
    ) -> Case: ...

    async def add_note(self, case_id: int, moderator_id: int, body: str) -> None: ...

    async def get_case(self, case_id: int) -> Case | None: ...

    async def find_by_case_number(self, case_number: int) -> Case | None: ...

    async def find_by_user_id(self, user_id: int) -> List[Case]: ...


class MuteStore(Protocol):
    async def find_live_mute(self, user_id: int) -> MuteState | None: ...

    async def set_case_id(self, user_id: int, case_id: int) -> None: ...

    async def upsert_mute(self, user_id: int, expires_at: datetime | None = None) -> MuteState: ...

    async def clear_mute(self, user_id: int) -> None: ...

    async def get_live_mutes(self) -> List[MuteState]: ...

    async def get_expired(self, now: datetime | None = None) -> List[MuteState]: ...
