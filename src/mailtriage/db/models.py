"""SQLite database schema and initialization for mailtriage.

This module defines the database schema with 4 tables:
- users: Account rows, onboarding flag, learned sender patterns (JSON)
- emails: Synced messages plus their classification envelope
- actions: Work items extracted from messages
- relationships: Tracked correspondents and their priority tier

All timestamps are stored as UTC ISO-8601 strings with microseconds, so
lexical comparison in SQL equals chronological comparison.

Usage:
    from mailtriage.db.models import init_database

    # Initialize database (creates tables if not exist)
    await init_database("data/mailtriage.db")
"""

import stat
from pathlib import Path

import aiosqlite

from mailtriage.core.errors import DatabaseError
from mailtriage.core.logging import get_logger

logger = get_logger(__name__)

# Schema version for migrations (increment when schema changes)
SCHEMA_VERSION = 1

REQUIRED_TABLES = ("users", "emails", "actions", "relationships")

# SQL schema definition
SCHEMA_SQL = """
-- MUST be set before creating tables. Persists across connections.
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    onboarding_completed INTEGER DEFAULT 0,
    sender_patterns_json TEXT,              -- Learned sender -> category patterns
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_users_onboarding ON users(onboarding_completed);

CREATE TABLE IF NOT EXISTS emails (
    id TEXT PRIMARY KEY,
    user_id TEXT REFERENCES users(id),
    sender_email TEXT,
    sender_name TEXT,
    subject TEXT,
    body_text TEXT,
    headers_json TEXT,                      -- Transport headers (name -> value)
    labels_json TEXT,                       -- Platform labels (INBOX, SPAM, ...)
    date TEXT,                              -- Receipt timestamp
    category TEXT,
    urgency_score REAL,                     -- Base urgency set by analysis (1-10)
    priority_score REAL,                    -- Reassessed priority (1-10)
    relationship_id TEXT,
    is_archived INTEGER DEFAULT 0,
    sender_type TEXT,                       -- direct, broadcast, cold_outreach, opportunity, unknown
    broadcast_subtype TEXT,
    sender_type_confidence REAL,
    sender_type_source TEXT,                -- header, email_pattern
    analysis_error TEXT,                    -- NULL unless the last analysis failed
    analyzed_at TEXT,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_emails_user_category ON emails(user_id, category);

-- Retry candidate lookups (error set, unanalyzed, ordered by updated_at)
CREATE INDEX IF NOT EXISTS idx_emails_retry
    ON emails(analysis_error, analyzed_at, updated_at);

CREATE TABLE IF NOT EXISTS actions (
    id TEXT PRIMARY KEY,
    user_id TEXT REFERENCES users(id),
    email_id TEXT REFERENCES emails(id),
    title TEXT,
    urgency_score REAL,                     -- Base urgency set at extraction (1-10)
    priority_score REAL,                    -- Reassessed priority (1-10)
    deadline TEXT,
    status TEXT DEFAULT 'pending',          -- pending, in_progress, done, cancelled
    relationship_id TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_actions_user_status ON actions(user_id, status, created_at);

CREATE TABLE IF NOT EXISTS relationships (
    id TEXT PRIMARY KEY,
    user_id TEXT REFERENCES users(id),
    name TEXT,
    email TEXT,
    priority TEXT DEFAULT 'normal',         -- low, normal, medium, high, vip
    status TEXT DEFAULT 'active'            -- active, archived
);

CREATE INDEX IF NOT EXISTS idx_relationships_user_status ON relationships(user_id, status);
"""


async def init_database(db_path: str | Path) -> None:
    """Initialize the SQLite database with schema and WAL mode.

    Creates the database file if it doesn't exist, enables WAL mode for
    concurrent access, and creates all tables and indexes.

    Raises:
        DatabaseError: If database initialization fails
    """
    db_path = Path(db_path)

    # Ensure parent directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            journal_mode = await db.execute("PRAGMA journal_mode")
            mode = await journal_mode.fetchone()
            if mode and mode[0].lower() != "wal":
                logger.warning(
                    "wal_mode_not_enabled",
                    requested="wal",
                    actual=mode[0],
                    db_path=str(db_path),
                )

            await db.executescript(SCHEMA_SQL)
            await db.commit()

            cursor = await db.execute("SELECT COUNT(*) FROM sqlite_master WHERE type='table'")
            table_count = (await cursor.fetchone())[0]

        # Owner read/write only: the database holds message content
        db_path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        for suffix in ["-wal", "-shm"]:
            wal_file = db_path.with_suffix(db_path.suffix + suffix)
            if wal_file.exists():
                wal_file.chmod(stat.S_IRUSR | stat.S_IWUSR)

        logger.info(
            "database_initialized",
            db_path=str(db_path),
            schema_version=SCHEMA_VERSION,
            tables_created=table_count,
        )

    except aiosqlite.Error as e:
        logger.error("database_init_failed", db_path=str(db_path), error=str(e))
        raise DatabaseError(
            f"Failed to initialize database at {db_path}: {e}. "
            "Check that the directory is writable and the database file is not corrupted."
        ) from e


async def verify_schema(db_path: str | Path) -> bool:
    """Check that all required tables exist.

    Returns:
        True if all tables exist, False otherwise
    """
    try:
        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
            existing_tables = {row[0] for row in await cursor.fetchall()}
    except aiosqlite.Error as e:
        logger.error("schema_verification_failed", db_path=str(db_path), error=str(e))
        return False

    missing = set(REQUIRED_TABLES) - existing_tables
    if missing:
        logger.warning("database_tables_missing", missing=sorted(missing), db_path=str(db_path))
        return False
    return True
