"""
One aiosqlite connection shared by every repository for the bot's lifetime.

Case numbers are allocated with a read-then-insert inside a write, so all
writes are funnelled through :meth:`ConnectionManager.transaction`, which
holds a lock for the whole unit of work. Reads go straight to the
connection; WAL keeps them from blocking on a writer.

Usage
-----
    await db_connection.open(app_config.database_path)

    async with db_connection.read() as conn:
        async with conn.execute("SELECT ...") as cursor:
            rows = await cursor.fetchall()

    async with db_connection.transaction() as conn:
        await conn.execute("INSERT ...")

    await db_connection.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from modledger.database.db_schema import SchemaManager
from modledger.util.logger import get_logger

logger = get_logger("db_connection")

BUSY_TIMEOUT_MS = 5000

_STARTUP_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA foreign_keys = ON",
    f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}",
)


class ConnectionManager:
    """Owns the connection and serialises write transactions."""

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self.path: Path | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self, path: Path) -> None:
        """
        Connect to ``path`` (created if missing) and bring the schema up to date.

        A second call while open is ignored.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] Already open on %s, ignoring open(%s)", self.path, path)
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        try:
            for pragma in _STARTUP_PRAGMAS:
                await conn.execute(pragma)
            await SchemaManager.initialize_schema(conn)
        except Exception:
            await conn.close()
            raise

        self._conn = conn
        self.path = path
        logger.info("[DB CONNECTION] Database ready at %s", path)

    async def close(self) -> None:
        """Checkpoint the WAL into the main file and disconnect."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except aiosqlite.Error as exc:
            logger.warning("[DB CONNECTION] WAL checkpoint on close failed: %s", exc)
        finally:
            await conn.close()
            logger.info("[DB CONNECTION] Closed %s", self.path)

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not open; call db_connection.open(path) during startup")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Exclusive unit of work: committed when the block exits cleanly, rolled
        back (and the error re-raised) otherwise.
        """
        conn = self.connection
        async with self._write_lock:
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Unlocked access for queries."""
        yield self.connection


db_connection = ConnectionManager()
