"""
Persistent per-guild mute state.

A row exists while a member is muted. ``expires_at`` NULL means the mute
never expires on its own; rows whose ``expires_at`` has passed are no longer
live and wait for the unmute scheduler to lift them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import aiosqlite

from modledger.database.db_connection import ConnectionManager, db_connection
from modledger.datatypes.case_datatypes import MuteState
from modledger.repositories.case_repo import from_unix, to_unix
from modledger.util.logger import get_logger

logger = get_logger("mute_repo")


def _row_to_mute(row: aiosqlite.Row) -> MuteState:
    return MuteState(user_id=row["user_id"], case_id=row["case_id"], expires_at=from_unix(row["expires_at"]))


class GuildMutes:
    """Mute store for a single guild."""

    def __init__(self, guild_id: int, connection: ConnectionManager = db_connection) -> None:
        self.guild_id = guild_id
        self._db = connection

    async def find_live_mute(self, user_id: int) -> MuteState | None:
        now = to_unix(datetime.now(timezone.utc))
        async with self._db.read() as conn:
            async with conn.execute(
                """
                SELECT user_id, case_id, expires_at FROM mutes
                WHERE guild_id = ? AND user_id = ? AND (expires_at IS NULL OR expires_at > ?)
                """,
                (self.guild_id, int(user_id), now),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_mute(row) if row is not None else None

    async def upsert_mute(self, user_id: int, expires_at: datetime | None = None) -> MuteState:
        """Create the mute or move its expiry; an existing case link is kept."""
        expires = to_unix(expires_at) if expires_at is not None else None
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO mutes (guild_id, user_id, expires_at, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(guild_id, user_id) DO UPDATE SET expires_at = excluded.expires_at
                """,
                (self.guild_id, int(user_id), expires, to_unix(datetime.now(timezone.utc))),
            )
            async with conn.execute(
                "SELECT user_id, case_id, expires_at FROM mutes WHERE guild_id = ? AND user_id = ?",
                (self.guild_id, int(user_id)),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_mute(row)

    async def set_case_id(self, user_id: int, case_id: int) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                "UPDATE mutes SET case_id = ? WHERE guild_id = ? AND user_id = ?",
                (case_id, self.guild_id, int(user_id)),
            )

    async def clear_mute(self, user_id: int) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                "DELETE FROM mutes WHERE guild_id = ? AND user_id = ?",
                (self.guild_id, int(user_id)),
            )

    async def get_live_mutes(self) -> List[MuteState]:
        now = to_unix(datetime.now(timezone.utc))
        async with self._db.read() as conn:
            async with conn.execute(
                """
                SELECT user_id, case_id, expires_at FROM mutes
                WHERE guild_id = ? AND (expires_at IS NULL OR expires_at > ?)
                ORDER BY created_at
                """,
                (self.guild_id, now),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_mute(row) for row in rows]

    async def get_expired(self, now: datetime | None = None) -> List[MuteState]:
        """Rows whose expiry has passed and that still need lifting."""
        cutoff = to_unix(now or datetime.now(timezone.utc))
        async with self._db.read() as conn:
            async with conn.execute(
                "SELECT user_id, case_id, expires_at FROM mutes WHERE guild_id = ? AND expires_at IS NOT NULL AND expires_at <= ?",
                (self.guild_id, cutoff),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_mute(row) for row in rows]
