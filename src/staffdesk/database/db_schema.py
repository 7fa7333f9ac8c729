"""
Database schema initialization.

Case records are stored as one JSON document per row in ``cases``; the
columns beside the document (kind, id, status, user) exist only to make the
sweeps' lookups cheap. Audit entries, scheduled intents and promotions get
their own tables because they are queried by time or by member.
"""

import aiosqlite

from staffdesk.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates tables and indexes and records the schema version."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and indexes if they are missing.

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
        await db.execute("""
            CREATE TABLE IF NOT EXISTS cases (
                kind TEXT NOT NULL,
                id TEXT NOT NULL,
                status TEXT NOT NULL,
                subject_id TEXT,
                data TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (kind, id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                action_type TEXT NOT NULL,
                user_id TEXT NOT NULL,
                target_id TEXT,
                details TEXT NOT NULL DEFAULT '{}',
                timestamp TEXT NOT NULL
            )
        """)

        # due_at is unix seconds (UTC) so the due query is a plain comparison
        await db.execute("""
            CREATE TABLE IF NOT EXISTS scheduled_intents (
                id TEXT PRIMARY KEY,
                action TEXT NOT NULL,
                channel_ref TEXT NOT NULL,
                case_kind TEXT NOT NULL,
                case_id TEXT NOT NULL,
                due_at INTEGER NOT NULL,
                status TEXT NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS promotions (
                id TEXT PRIMARY KEY,
                staff_id TEXT NOT NULL,
                old_rank TEXT NOT NULL,
                new_rank TEXT NOT NULL,
                reason TEXT NOT NULL,
                promoter_id TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS id_counters (
                kind TEXT PRIMARY KEY,
                value INTEGER NOT NULL DEFAULT 0
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
        await db.execute("CREATE INDEX IF NOT EXISTS idx_cases_status ON cases(kind, status)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_cases_subject ON cases(kind, subject_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_audit_target ON audit_log(target_id, seq)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_intents_due ON scheduled_intents(status, due_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_promotions_staff ON promotions(staff_id, timestamp)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
