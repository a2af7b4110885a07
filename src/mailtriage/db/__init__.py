"""Database layer for mailtriage.

This module provides SQLite database access with async operations.

Usage:
    from mailtriage.db import DatabaseStore, Email

    store = DatabaseStore("data/mailtriage.db")
    await store.initialize()

    email = Email(id="abc123", user_id="user-1", sender_email="test@example.com")
    await store.save_email(email)
"""

from mailtriage.db.models import REQUIRED_TABLES, init_database, verify_schema
from mailtriage.db.store import (
    Action,
    DatabaseStore,
    Email,
    Relationship,
    User,
)

__all__ = [
    # Models
    "REQUIRED_TABLES",
    "init_database",
    "verify_schema",
    # Store
    "DatabaseStore",
    # Dataclasses
    "Action",
    "Email",
    "Relationship",
    "User",
]
