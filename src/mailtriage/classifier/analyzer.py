"""Contract for the external content analyzer.

The retry job only needs `analyze(email, context) -> AnalysisOutcome` and
inspects nothing but the success flag and the optional error string. The
concrete Claude-backed implementation lives in claude_analyzer.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from mailtriage.db.store import Email, Relationship


@dataclass(frozen=True, slots=True)
class UserContext:
    """Per-user context loaded once per retry group."""

    user_id: str
    relationships: tuple[Relationship, ...] = field(default=())


@dataclass(frozen=True, slots=True)
class AnalysisOutcome:
    """Result of analyzing one message."""

    success: bool
    error: str | None = None
    category: str | None = None
    urgency_score: float | None = None


class Analyzer(Protocol):
    """Anything that can analyze one message in a user's context."""

    async def analyze(self, email: Email, context: UserContext) -> AnalysisOutcome: ...
