"""
Data structures exchanged between the moderation components.

Events describe what the gateway reported, outcomes describe what a command
achieved. Neither is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List

from modledger.datatypes.case_datatypes import Case


class EventKind(Enum):
    """Kinds of externally observed membership events."""

    BAN = "ban"
    UNBAN = "unban"
    KICK = "kick"
    MEMBER_JOIN = "member_join"

    def __str__(self) -> str:
        return self.value


# Events that the bot's own mutations echo back and that can be suppressed
SUPPRESSIBLE_EVENTS = frozenset({EventKind.BAN, EventKind.UNBAN, EventKind.KICK})


@dataclass(slots=True)
class ModerationEvent:
    """A membership event observed on the gateway.

    Attributes:
        kind: What happened.
        user_id: The affected user.
        observed_at: When the bot saw the event.
        username: Display name at the time of the event, when known.
    """

    kind: EventKind
    user_id: int
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    username: str | None = None


@dataclass(slots=True, frozen=True)
class AuditMatch:
    """The audit log entry an observed event was attributed to."""

    moderator_id: int
    audit_entry_id: int
    reason: str | None = None


@dataclass(slots=True)
class AuditEntry:
    """Platform-neutral view of one audit log entry."""

    id: int
    kind: EventKind
    target_id: int | None
    moderator_id: int
    created_at: datetime
    reason: str | None = None


class OutcomeStatus(Enum):
    """Terminal states of a moderation command."""

    SUCCESS = "success"
    DENIED = "denied"
    MUTATION_FAILED = "mutation_failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class CommandOutcome:
    """Result of a moderation command, rich enough to render a reply.

    Attributes:
        status: Terminal state of the command.
        notified: Whether the affected user was informed. True when no
            notification was required.
        case: Case created or updated by the command.
        detail: Free-form explanation for failures.
        updated_existing: True when an existing case was updated instead of a new one opened.
    """

    status: OutcomeStatus
    notified: bool = True
    case: Case | None = None
    detail: str | None = None
    updated_existing: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def denied(cls, detail: str) -> "CommandOutcome":
        return cls(status=OutcomeStatus.DENIED, notified=False, detail=detail)

    @classmethod
    def failed(cls, detail: str) -> "CommandOutcome":
        return cls(status=OutcomeStatus.MUTATION_FAILED, notified=False, detail=detail)


@dataclass(slots=True)
class BatchOutcome:
    """Partitioned result of a multi-target action."""

    requested: List[int] = field(default_factory=list)
    succeeded: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    # Mutated successfully but the case write failed; also listed in ``succeeded``
    unrecorded: List[int] = field(default_factory=list)


@dataclass(slots=True)
class MassbanOutcome:
    """Terminal state of a massban request plus its batch result."""

    status: OutcomeStatus
    batch: BatchOutcome = field(default_factory=BatchOutcome)
    reason: str | None = None
    detail: str | None = None
