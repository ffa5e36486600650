"""
Case types and records for the per-guild moderation history.

Cases are append-only: once created only their notes grow. Case numbers are
assigned by the case store and increase per guild.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List


class CaseType(Enum):
    """Enumeration of the kinds of case a guild's history can contain."""

    NOTE = "note"
    WARN = "warn"
    MUTE = "mute"
    UNMUTE = "unmute"
    KICK = "kick"
    BAN = "ban"
    UNBAN = "unban"
    SOFTBAN = "softban"

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: str) -> "CaseType | None":
        """Look up a case type by case-insensitive name, returning None if unknown."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(slots=True)
class CaseNote:
    """A note appended to a case after it was created."""

    body: str
    moderator_id: int
    created_at: datetime


@dataclass(slots=True)
class Case:
    """A single entry in a guild's moderation history.

    Attributes:
        id: Store-assigned primary key.
        guild_id: Guild the case belongs to.
        case_number: Per-guild incrementing number shown to moderators.
        type: Kind of action the case records.
        user_id: Subject of the case.
        moderator_id: Acting moderator, None for automatic cases with no audit match.
        reason: Reason given when the case was opened.
        created_at: Creation time (UTC).
        automatic: True when the case came from an observed event instead of a command.
        audit_log_id: Audit log entry the case was attributed from, if any.
        related_case_id: Case this one refers to (an unmute points at its mute).
        notes: Notes appended later, oldest first.
    """

    id: int
    guild_id: int
    case_number: int
    type: CaseType
    user_id: int
    moderator_id: int | None
    reason: str | None
    created_at: datetime
    automatic: bool = False
    audit_log_id: int | None = None
    related_case_id: int | None = None
    notes: List[CaseNote] = field(default_factory=list)


@dataclass(slots=True)
class MuteState:
    """The live mute of one member. ``expires_at`` of None means indefinite."""

    user_id: int
    case_id: int | None = None
    expires_at: datetime | None = None
