"""
Persistent per-guild case history.

Timestamps are stored as INTEGER unix seconds (UTC). Case numbers are
allocated inside the write transaction, so they are gap-free and unique per
guild even with concurrent writers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List

import aiosqlite

from modledger.database.db_connection import ConnectionManager, db_connection
from modledger.datatypes.case_datatypes import Case, CaseNote, CaseType
from modledger.util.logger import get_logger

logger = get_logger("case_repo")

_CASE_COLUMNS = (
    "id, guild_id, case_number, type, user_id, moderator_id, reason, "
    "automatic, audit_log_id, related_case_id, created_at"
)


def to_unix(value: datetime) -> int:
    return int(value.timestamp())


def from_unix(value: int | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


def _row_to_case(row: aiosqlite.Row) -> Case:
    return Case(
        id=row["id"],
        guild_id=row["guild_id"],
        case_number=row["case_number"],
        type=CaseType(row["type"]),
        user_id=row["user_id"],
        moderator_id=row["moderator_id"],
        reason=row["reason"],
        created_at=from_unix(row["created_at"]),
        automatic=bool(row["automatic"]),
        audit_log_id=row["audit_log_id"],
        related_case_id=row["related_case_id"],
    )


class GuildCases:
    """Case store for a single guild."""

    def __init__(self, guild_id: int, connection: ConnectionManager = db_connection) -> None:
        self.guild_id = guild_id
        self._db = connection

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

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
    ) -> Case:
        """Insert a case with the next case number of this guild."""
        created_at = datetime.now(timezone.utc)
        async with self._db.transaction() as conn:
            async with conn.execute(
                "SELECT COALESCE(MAX(case_number), 0) + 1 FROM cases WHERE guild_id = ?",
                (self.guild_id,),
            ) as cursor:
                row = await cursor.fetchone()
            case_number = row[0]

            cursor = await conn.execute(
                """
                INSERT INTO cases (guild_id, case_number, type, user_id, moderator_id, reason,
                                   automatic, audit_log_id, related_case_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    self.guild_id,
                    case_number,
                    type.value,
                    int(user_id),
                    moderator_id,
                    reason,
                    int(automatic),
                    audit_log_id,
                    related_case_id,
                    to_unix(created_at),
                ),
            )
            case_id = cursor.lastrowid

        logger.debug("[CASE REPO] Inserted case #%d (id=%s) in guild %s", case_number, case_id, self.guild_id)
        return Case(
            id=case_id,
            guild_id=self.guild_id,
            case_number=case_number,
            type=type,
            user_id=int(user_id),
            moderator_id=moderator_id,
            reason=reason,
            created_at=from_unix(to_unix(created_at)),
            automatic=automatic,
            audit_log_id=audit_log_id,
            related_case_id=related_case_id,
        )

    async def add_note(self, case_id: int, moderator_id: int, body: str) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                "INSERT INTO case_notes (case_id, moderator_id, body, created_at) VALUES (?, ?, ?, ?)",
                (case_id, moderator_id, body, to_unix(datetime.now(timezone.utc))),
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load_notes(self, conn: aiosqlite.Connection, cases: List[Case]) -> List[Case]:
        if not cases:
            return cases
        by_id: Dict[int, Case] = {case.id: case for case in cases}
        placeholders = ",".join("?" for _ in by_id)
        async with conn.execute(
            f"SELECT case_id, moderator_id, body, created_at FROM case_notes "
            f"WHERE case_id IN ({placeholders}) ORDER BY created_at, id",
            tuple(by_id),
        ) as cursor:
            rows = await cursor.fetchall()
        for row in rows:
            by_id[row["case_id"]].notes.append(
                CaseNote(body=row["body"], moderator_id=row["moderator_id"], created_at=from_unix(row["created_at"]))
            )
        return cases

    async def get_case(self, case_id: int) -> Case | None:
        async with self._db.read() as conn:
            async with conn.execute(
                f"SELECT {_CASE_COLUMNS} FROM cases WHERE guild_id = ? AND id = ?",
                (self.guild_id, case_id),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            return (await self._load_notes(conn, [_row_to_case(row)]))[0]

    async def find_by_case_number(self, case_number: int) -> Case | None:
        async with self._db.read() as conn:
            async with conn.execute(
                f"SELECT {_CASE_COLUMNS} FROM cases WHERE guild_id = ? AND case_number = ?",
                (self.guild_id, case_number),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            return (await self._load_notes(conn, [_row_to_case(row)]))[0]

    async def find_by_user_id(self, user_id: int) -> List[Case]:
        """All cases of a user in this guild, oldest first, notes included."""
        async with self._db.read() as conn:
            async with conn.execute(
                f"SELECT {_CASE_COLUMNS} FROM cases WHERE guild_id = ? AND user_id = ? ORDER BY case_number",
                (self.guild_id, int(user_id)),
            ) as cursor:
                rows = await cursor.fetchall()
            return await self._load_notes(conn, [_row_to_case(row) for row in rows])
