"""Database store with CRUD operations for all tables.

This module provides the DatabaseStore class that encapsulates all database
operations for mailtriage. It uses aiosqlite for async access and converts
rows to dataclasses. Every aiosqlite error is wrapped in DatabaseError.

Usage:
    from mailtriage.db.store import DatabaseStore

    store = DatabaseStore("data/mailtriage.db")
    await store.initialize()

    # Email operations
    await store.save_email(email)
    email = await store.get_email("message_id")

    # Retry bookkeeping
    candidates = await store.get_retry_candidates(oldest_allowed, newest_allowed)
    await store.reset_analysis_state([c.id for c in candidates])
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import aiosqlite

from mailtriage.core.errors import DatabaseError
from mailtriage.core.logging import get_logger
from mailtriage.db.models import init_database

if TYPE_CHECKING:
    from mailtriage.classifier.sender_type import SenderTypeResult

logger = get_logger(__name__)

ActionStatus = Literal["pending", "in_progress", "done", "cancelled"]
RelationshipPriority = Literal["low", "normal", "medium", "high", "vip"]


def to_db_timestamp(value: datetime | None) -> str | None:
    """Serialize a datetime as a UTC ISO string with microseconds.

    Naive datetimes are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_db_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _load_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("invalid_json_column", preview=raw[:50])
        return default


@dataclass
class User:
    """User record from the database."""

    id: str
    email: str | None = None
    onboarding_completed: bool = False
    created_at: datetime | None = None


@dataclass
class Email:
    """Email record: message fields plus the classification envelope."""

    id: str
    user_id: str
    sender_email: str | None = None
    sender_name: str | None = None
    subject: str | None = None
    body_text: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    labels: list[str] = field(default_factory=list)
    date: datetime | None = None
    category: str | None = None
    urgency_score: float | None = None
    priority_score: float | None = None
    relationship_id: str | None = None
    is_archived: bool = False
    sender_type: str | None = None
    broadcast_subtype: str | None = None
    sender_type_confidence: float | None = None
    sender_type_source: str | None = None
    analysis_error: str | None = None
    analyzed_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Action:
    """Work item extracted from a message."""

    id: str
    user_id: str
    title: str | None = None
    email_id: str | None = None
    urgency_score: float | None = 5.0
    priority_score: float | None = None
    deadline: datetime | None = None
    status: ActionStatus = "pending"
    relationship_id: str | None = None
    created_at: datetime | None = None


@dataclass
class Relationship:
    """Tracked correspondent with an importance tier."""

    id: str
    user_id: str
    name: str
    email: str | None = None
    priority: RelationshipPriority = "normal"
    status: str = "active"


class DatabaseStore:
    """Database store for all mailtriage data.

    Attributes:
        db_path: Path to the SQLite database file
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed.

        This must be called before any other operations.
        """
        await init_database(self.db_path)
        self._initialized = True

    @asynccontextmanager
    async def _db(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get a configured database connection.

        Sets all required PRAGMAs for reliability and performance:
        - busy_timeout: 10s to handle concurrent jobs and web requests
        - foreign_keys: ON to enforce referential integrity
        - synchronous: NORMAL (safe with WAL, faster writes)
        """
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA busy_timeout = 10000")
            await db.execute("PRAGMA foreign_keys = ON")
            await db.execute("PRAGMA synchronous = NORMAL")
            db.row_factory = aiosqlite.Row
            yield db

    # =========================================================================
    # User Operations
    # =========================================================================

    async def save_user(self, user: User) -> None:
        """Insert or update a user row (sender patterns are left untouched)."""
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO users (id, email, onboarding_completed, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        email = excluded.email,
                        onboarding_completed = excluded.onboarding_completed
                    """,
                    (
                        user.id,
                        user.email,
                        int(user.onboarding_completed),
                        to_db_timestamp(user.created_at or _utcnow()),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("user_save_failed", user_id=user.id, error=str(e))
            raise DatabaseError(f"Failed to save user {user.id}: {e}") from e

    async def get_onboarded_user_ids(self) -> list[str]:
        """Return the ids of every user who finished onboarding."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "SELECT id FROM users WHERE onboarding_completed = 1 ORDER BY id"
                )
                return [row["id"] for row in await cursor.fetchall()]
        except aiosqlite.Error as e:
            logger.error("onboarded_users_fetch_failed", error=str(e))
            raise DatabaseError(f"Failed to list onboarded users: {e}") from e

    async def get_sender_patterns(self, user_id: str) -> list[dict[str, Any]]:
        """Return the user's learned sender patterns as raw dicts."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "SELECT sender_patterns_json FROM users WHERE id = ?", (user_id,)
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error("sender_patterns_fetch_failed", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get sender patterns for {user_id}: {e}") from e

        if not row:
            return []
        patterns = _load_json(row["sender_patterns_json"], [])
        return patterns if isinstance(patterns, list) else []

    async def save_sender_patterns(self, user_id: str, patterns: list[dict[str, Any]]) -> None:
        """Replace the user's learned sender patterns."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "UPDATE users SET sender_patterns_json = ? WHERE id = ?",
                    (json.dumps(patterns), user_id),
                )
                await db.commit()
                if cursor.rowcount == 0:
                    raise DatabaseError(f"Cannot save sender patterns: unknown user {user_id}")
        except aiosqlite.Error as e:
            logger.error("sender_patterns_save_failed", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to save sender patterns for {user_id}: {e}") from e

    # =========================================================================
    # Email Operations
    # =========================================================================

    async def save_email(self, email: Email) -> None:
        """Save or update an email record.

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO emails (
                        id, user_id, sender_email, sender_name, subject, body_text,
                        headers_json, labels_json, date, category, urgency_score,
                        priority_score, relationship_id, is_archived, sender_type,
                        broadcast_subtype, sender_type_confidence, sender_type_source,
                        analysis_error, analyzed_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        user_id = excluded.user_id,
                        sender_email = excluded.sender_email,
                        sender_name = excluded.sender_name,
                        subject = excluded.subject,
                        body_text = excluded.body_text,
                        headers_json = excluded.headers_json,
                        labels_json = excluded.labels_json,
                        date = excluded.date,
                        category = excluded.category,
                        urgency_score = excluded.urgency_score,
                        priority_score = excluded.priority_score,
                        relationship_id = excluded.relationship_id,
                        is_archived = excluded.is_archived,
                        sender_type = excluded.sender_type,
                        broadcast_subtype = excluded.broadcast_subtype,
                        sender_type_confidence = excluded.sender_type_confidence,
                        sender_type_source = excluded.sender_type_source,
                        analysis_error = excluded.analysis_error,
                        analyzed_at = excluded.analyzed_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        email.id,
                        email.user_id,
                        email.sender_email.lower() if email.sender_email else None,
                        email.sender_name,
                        email.subject,
                        email.body_text,
                        json.dumps(email.headers or {}),
                        json.dumps(email.labels or []),
                        to_db_timestamp(email.date),
                        email.category,
                        email.urgency_score,
                        email.priority_score,
                        email.relationship_id,
                        int(email.is_archived),
                        email.sender_type,
                        email.broadcast_subtype,
                        email.sender_type_confidence,
                        email.sender_type_source,
                        email.analysis_error,
                        to_db_timestamp(email.analyzed_at),
                        to_db_timestamp(email.updated_at or _utcnow()),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("email_save_failed", email_id=email.id, error=str(e))
            raise DatabaseError(f"Failed to save email {email.id}: {e}") from e

    async def get_email(self, email_id: str) -> Email | None:
        """Get an email by ID, or None if not found."""
        try:
            async with self._db() as db:
                cursor = await db.execute("SELECT * FROM emails WHERE id = ?", (email_id,))
                row = await cursor.fetchone()
                return self._row_to_email(row) if row else None
        except aiosqlite.Error as e:
            logger.error("email_fetch_failed", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to get email {email_id}: {e}") from e

    async def get_emails_batch(self, email_ids: list[str]) -> dict[str, Email]:
        """Get multiple emails by ID in a single query.

        Returns:
            Dict mapping email_id to Email dataclass (missing IDs are omitted)
        """
        if not email_ids:
            return {}

        try:
            async with self._db() as db:
                placeholders = ",".join("?" * len(email_ids))
                cursor = await db.execute(
                    f"SELECT * FROM emails WHERE id IN ({placeholders})",
                    email_ids,
                )
                rows = await cursor.fetchall()
                return {row["id"]: self._row_to_email(row) for row in rows}
        except aiosqlite.Error as e:
            logger.error("emails_batch_fetch_failed", count=len(email_ids), error=str(e))
            raise DatabaseError(f"Failed to get emails batch: {e}") from e

    async def get_work_emails(
        self,
        user_id: str,
        categories: list[str],
        since: datetime,
        after_id: str | None = None,
        limit: int = 100,
    ) -> list[Email]:
        """Page through a user's unarchived work emails received since a cutoff.

        Pages are keyed on id: pass the last id of the previous page as
        `after_id` to fetch the next one.
        """
        if not categories:
            return []

        try:
            async with self._db() as db:
                placeholders = ",".join("?" * len(categories))
                cursor = await db.execute(
                    f"""
                    SELECT * FROM emails
                    WHERE user_id = ?
                    AND category IN ({placeholders})
                    AND is_archived = 0
                    AND date >= ?
                    AND id > ?
                    ORDER BY id
                    LIMIT ?
                    """,
                    (user_id, *categories, to_db_timestamp(since), after_id or "", limit),
                )
                rows = await cursor.fetchall()
                return [self._row_to_email(row) for row in rows]
        except aiosqlite.Error as e:
            logger.error("work_emails_fetch_failed", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to fetch work emails for {user_id}: {e}") from e

    async def update_email_priority(self, email_id: str, priority_score: float) -> None:
        """Write a reassessed priority score (the base urgency is untouched)."""
        try:
            async with self._db() as db:
                await db.execute(
                    "UPDATE emails SET priority_score = ? WHERE id = ?",
                    (priority_score, email_id),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("email_priority_update_failed", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to update priority of email {email_id}: {e}") from e

    async def get_retry_candidates(
        self,
        updated_after: datetime,
        updated_before: datetime,
    ) -> list[Email]:
        """Failed, unanalyzed emails last touched strictly inside a time window.

        Ordered oldest-first by updated_at.
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM emails
                    WHERE analysis_error IS NOT NULL
                    AND analyzed_at IS NULL
                    AND updated_at > ?
                    AND updated_at < ?
                    ORDER BY updated_at ASC, id ASC
                    """,
                    (to_db_timestamp(updated_after), to_db_timestamp(updated_before)),
                )
                rows = await cursor.fetchall()
                return [self._row_to_email(row) for row in rows]
        except aiosqlite.Error as e:
            logger.error("retry_candidates_fetch_failed", error=str(e))
            raise DatabaseError(f"Failed to query retry candidates: {e}") from e

    async def reset_analysis_state(self, email_ids: list[str]) -> None:
        """Clear the error and analyzed markers so the emails look fresh."""
        if not email_ids:
            return

        try:
            async with self._db() as db:
                placeholders = ",".join("?" * len(email_ids))
                await db.execute(
                    f"""
                    UPDATE emails
                    SET analysis_error = NULL, analyzed_at = NULL, updated_at = ?
                    WHERE id IN ({placeholders})
                    """,
                    (to_db_timestamp(_utcnow()), *email_ids),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("analysis_reset_failed", count=len(email_ids), error=str(e))
            raise DatabaseError(f"Failed to reset analysis state: {e}") from e

    async def record_analysis_failure(self, email_id: str, error: str) -> None:
        """Mark an email as failed; this restarts its retry cooldown."""
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    UPDATE emails
                    SET analysis_error = ?, analyzed_at = NULL, updated_at = ?
                    WHERE id = ?
                    """,
                    (error, to_db_timestamp(_utcnow()), email_id),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("analysis_failure_record_failed", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to record analysis failure for {email_id}: {e}") from e

    async def record_analysis_result(
        self,
        email_id: str,
        category: str,
        urgency_score: float,
        relationship_id: str | None = None,
    ) -> None:
        """Persist a successful analysis and clear any previous error.

        The initial priority equals the base urgency until reassessment runs.
        """
        now = to_db_timestamp(_utcnow())
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    UPDATE emails
                    SET category = ?, urgency_score = ?, priority_score = ?,
                        relationship_id = COALESCE(?, relationship_id),
                        analysis_error = NULL, analyzed_at = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (category, urgency_score, urgency_score, relationship_id, now, now, email_id),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("analysis_result_record_failed", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to record analysis for {email_id}: {e}") from e

    async def record_sender_type(self, email_id: str, result: SenderTypeResult) -> None:
        """Persist a sender type detection outcome on the email row."""
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    UPDATE emails
                    SET sender_type = ?, broadcast_subtype = ?,
                        sender_type_confidence = ?, sender_type_source = ?
                    WHERE id = ?
                    """,
                    (
                        result.sender_type,
                        result.broadcast_subtype,
                        result.confidence,
                        result.source,
                        email_id,
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("sender_type_record_failed", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to record sender type for {email_id}: {e}") from e

    def _row_to_email(self, row: aiosqlite.Row) -> Email:
        """Convert a database row to an Email dataclass."""
        headers = _load_json(row["headers_json"], {})
        labels = _load_json(row["labels_json"], [])
        return Email(
            id=row["id"],
            user_id=row["user_id"],
            sender_email=row["sender_email"],
            sender_name=row["sender_name"],
            subject=row["subject"],
            body_text=row["body_text"],
            headers=headers if isinstance(headers, dict) else {},
            labels=labels if isinstance(labels, list) else [],
            date=from_db_timestamp(row["date"]),
            category=row["category"],
            urgency_score=row["urgency_score"],
            priority_score=row["priority_score"],
            relationship_id=row["relationship_id"],
            is_archived=bool(row["is_archived"]),
            sender_type=row["sender_type"],
            broadcast_subtype=row["broadcast_subtype"],
            sender_type_confidence=row["sender_type_confidence"],
            sender_type_source=row["sender_type_source"],
            analysis_error=row["analysis_error"],
            analyzed_at=from_db_timestamp(row["analyzed_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )

    # =========================================================================
    # Action Operations
    # =========================================================================

    async def save_action(self, action: Action) -> None:
        """Save or update an action record."""
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO actions (
                        id, user_id, email_id, title, urgency_score, priority_score,
                        deadline, status, relationship_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title = excluded.title,
                        urgency_score = excluded.urgency_score,
                        priority_score = excluded.priority_score,
                        deadline = excluded.deadline,
                        status = excluded.status,
                        relationship_id = excluded.relationship_id
                    """,
                    (
                        action.id,
                        action.user_id,
                        action.email_id,
                        action.title,
                        action.urgency_score,
                        action.priority_score,
                        to_db_timestamp(action.deadline),
                        action.status,
                        action.relationship_id,
                        to_db_timestamp(action.created_at or _utcnow()),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("action_save_failed", action_id=action.id, error=str(e))
            raise DatabaseError(f"Failed to save action {action.id}: {e}") from e

    async def get_action(self, action_id: str) -> Action | None:
        try:
            async with self._db() as db:
                cursor = await db.execute("SELECT * FROM actions WHERE id = ?", (action_id,))
                row = await cursor.fetchone()
                return self._row_to_action(row) if row else None
        except aiosqlite.Error as e:
            logger.error("action_fetch_failed", action_id=action_id, error=str(e))
            raise DatabaseError(f"Failed to get action {action_id}: {e}") from e

    async def get_pending_actions(
        self,
        user_id: str,
        since: datetime,
        after_id: str | None = None,
        limit: int = 100,
    ) -> list[Action]:
        """Page through a user's pending actions created since a cutoff.

        Pages are keyed on id, like get_work_emails().
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM actions
                    WHERE user_id = ?
                    AND status = 'pending'
                    AND created_at >= ?
                    AND id > ?
                    ORDER BY id
                    LIMIT ?
                    """,
                    (user_id, to_db_timestamp(since), after_id or "", limit),
                )
                rows = await cursor.fetchall()
                return [self._row_to_action(row) for row in rows]
        except aiosqlite.Error as e:
            logger.error("pending_actions_fetch_failed", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to fetch pending actions for {user_id}: {e}") from e

    async def update_action_priority(self, action_id: str, priority_score: float) -> None:
        """Write a reassessed priority score (the base urgency is untouched)."""
        try:
            async with self._db() as db:
                await db.execute(
                    "UPDATE actions SET priority_score = ? WHERE id = ?",
                    (priority_score, action_id),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("action_priority_update_failed", action_id=action_id, error=str(e))
            raise DatabaseError(f"Failed to update priority of action {action_id}: {e}") from e

    def _row_to_action(self, row: aiosqlite.Row) -> Action:
        return Action(
            id=row["id"],
            user_id=row["user_id"],
            email_id=row["email_id"],
            title=row["title"],
            urgency_score=row["urgency_score"],
            priority_score=row["priority_score"],
            deadline=from_db_timestamp(row["deadline"]),
            status=row["status"],
            relationship_id=row["relationship_id"],
            created_at=from_db_timestamp(row["created_at"]),
        )

    # =========================================================================
    # Relationship Operations
    # =========================================================================

    async def save_relationship(self, relationship: Relationship) -> None:
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO relationships (id, user_id, name, email, priority, status)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        email = excluded.email,
                        priority = excluded.priority,
                        status = excluded.status
                    """,
                    (
                        relationship.id,
                        relationship.user_id,
                        relationship.name,
                        relationship.email,
                        relationship.priority,
                        relationship.status,
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.error("relationship_save_failed", relationship_id=relationship.id, error=str(e))
            raise DatabaseError(f"Failed to save relationship {relationship.id}: {e}") from e

    async def get_active_relationships(self, user_id: str) -> list[Relationship]:
        """Return the user's active relationships, ordered by name."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM relationships
                    WHERE user_id = ? AND status = 'active'
                    ORDER BY name
                    """,
                    (user_id,),
                )
                rows = await cursor.fetchall()
                return [
                    Relationship(
                        id=row["id"],
                        user_id=row["user_id"],
                        name=row["name"],
                        email=row["email"],
                        priority=row["priority"],
                        status=row["status"],
                    )
                    for row in rows
                ]
        except aiosqlite.Error as e:
            logger.error("relationships_fetch_failed", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to fetch relationships for {user_id}: {e}") from e
