"""
Database schema initialization.

Creates the case, case note and mute tables plus the schema version marker.
"""

import aiosqlite
from modledger.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates tables and indexes; safe to run on every startup."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and indexes that do not exist yet.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Timestamps are INTEGER unix seconds (UTC)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS cases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                case_number INTEGER NOT NULL,
                type TEXT NOT NULL,
                user_id INTEGER NOT NULL,
                moderator_id INTEGER,
                reason TEXT,
                automatic INTEGER NOT NULL DEFAULT 0,
                audit_log_id INTEGER,
                related_case_id INTEGER REFERENCES cases(id),
                created_at INTEGER NOT NULL,
                UNIQUE (guild_id, case_number)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS case_notes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                case_id INTEGER NOT NULL,
                moderator_id INTEGER NOT NULL,
                body TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                FOREIGN KEY (case_id) REFERENCES cases(id) ON DELETE CASCADE
            )
        """)

        # expires_at NULL means the mute is indefinite
        await db.execute("""
            CREATE TABLE IF NOT EXISTS mutes (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                case_id INTEGER,
                expires_at INTEGER,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (guild_id, user_id),
                FOREIGN KEY (case_id) REFERENCES cases(id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_cases_user ON cases(guild_id, user_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_case_notes_case ON case_notes(case_id, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_mutes_expiry ON mutes(expires_at)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
