"""Claude-backed analyzer using forced tool use for structured output.

Categorizes one message and assigns its base urgency. On success the
result is persisted on the email row (category, urgency, initial priority,
analyzed_at; the previous error is cleared). API and validation failures
are returned as AnalysisOutcome(success=False) rather than raised, so the
retry job can record them and move on.

Error handling strategy:
- Transient errors (429, 5xx, network): Handled by the Anthropic SDK retries
- Malformed tool calls: reported as a failed outcome, retried by the retry job

Usage:
    from mailtriage.classifier.claude_analyzer import ClaudeAnalyzer

    analyzer = ClaudeAnalyzer(anthropic.AsyncAnthropic(max_retries=3), store, config)
    outcome = await analyzer.analyze(email, context)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import anthropic

from mailtriage.classifier.analyzer import AnalysisOutcome, UserContext
from mailtriage.classifier.patterns import EMAIL_CATEGORIES
from mailtriage.core.errors import AnalysisError, DatabaseError
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.config_schema import AppConfig
    from mailtriage.db.store import DatabaseStore, Email

logger = get_logger(__name__)

TOOL_NAME = "categorize_email"

CATEGORIZE_EMAIL_TOOL: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": "Categorize an email and rate how urgently the user should see it",
    "input_schema": {
        "type": "object",
        "properties": {
            "category": {"type": "string", "enum": list(EMAIL_CATEGORIES)},
            "urgency_score": {
                "type": "integer",
                "minimum": 1,
                "maximum": 10,
                "description": "1 = can wait indefinitely, 10 = needs attention now",
            },
            "relationship_id": {
                "type": ["string", "null"],
                "description": "Id of the tracked relationship this email belongs to, if any",
            },
            "reasoning": {
                "type": "string",
                "description": "One sentence explaining the categorization",
            },
        },
        "required": ["category", "urgency_score", "reasoning"],
    },
}

SYSTEM_PROMPT = (
    "You triage a user's inbox. Pick exactly one category for the email and rate "
    "its urgency from 1 to 10. If the sender matches one of the user's tracked "
    "relationships, return that relationship's id."
)


class ClaudeAnalyzer:
    """Analyzes messages with Claude and persists the outcome.

    Attributes:
        _client: Async Anthropic client (configure max_retries for transient errors)
        _store: Database store used to persist results
        _config: Application configuration
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        store: DatabaseStore,
        config: AppConfig,
    ):
        self._client = client
        self._store = store
        self._config = config

    async def analyze(self, email: Email, context: UserContext) -> AnalysisOutcome:
        """Categorize one message in the user's context."""
        analyzer_config = self._config.analyzer
        start_time = time.monotonic()

        try:
            response = await self._client.messages.create(
                model=analyzer_config.model,
                max_tokens=analyzer_config.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": self._build_user_message(email, context)}],
                tools=[CATEGORIZE_EMAIL_TOOL],
                tool_choice={"type": "tool", "name": TOOL_NAME},
            )
        except anthropic.RateLimitError as e:
            return self._failure(email, f"Rate limited after SDK retries: {e}")
        except anthropic.APIConnectionError as e:
            return self._failure(email, f"API connection error after SDK retries: {e}")
        except anthropic.APIStatusError as e:
            return self._failure(email, f"API status error {e.status_code}: {e.message}")

        duration_ms = int((time.monotonic() - start_time) * 1000)

        try:
            tool_call = _parse_tool_call(response, context, email.id)
        except AnalysisError as e:
            return self._failure(email, str(e))

        category = tool_call["category"]
        urgency = float(tool_call["urgency_score"])
        relationship_id = tool_call.get("relationship_id") or None

        try:
            await self._store.record_analysis_result(
                email.id,
                category=category,
                urgency_score=urgency,
                relationship_id=relationship_id,
            )
        except DatabaseError as e:
            return self._failure(email, f"Failed to persist analysis: {e}")

        logger.info(
            "email_analyzed",
            email_id=email.id,
            category=category,
            urgency_score=urgency,
            duration_ms=duration_ms,
        )
        return AnalysisOutcome(success=True, category=category, urgency_score=urgency)

    def _build_user_message(self, email: Email, context: UserContext) -> str:
        body = (email.body_text or "")[: self._config.analyzer.max_body_chars]
        lines = [
            f"From: {email.sender_name or ''} <{email.sender_email or ''}>",
            f"Subject: {email.subject or '(no subject)'}",
            f"Date: {email.date.isoformat() if email.date else 'unknown'}",
        ]
        if context.relationships:
            lines.append("Tracked relationships:")
            lines.extend(
                f"- {rel.id}: {rel.name} <{rel.email or ''}> ({rel.priority})"
                for rel in context.relationships
            )
        lines.extend(["", body])
        return "\n".join(lines)

    def _failure(self, email: Email, error: str) -> AnalysisOutcome:
        logger.warning("email_analysis_failed", email_id=email.id, error=error)
        return AnalysisOutcome(success=False, error=error)


def _parse_tool_call(
    response: anthropic.types.Message, context: UserContext, email_id: str
) -> dict[str, Any]:
    """Return the validated categorize_email tool input.

    Raises:
        AnalysisError: If the response has no usable tool call
    """
    tool_call = _extract_tool_call(response)
    if tool_call is None:
        raise AnalysisError("No tool call in response", email_id=email_id)

    validation_error = _validate_tool_call(tool_call, context)
    if validation_error:
        raise AnalysisError(validation_error, email_id=email_id)

    return tool_call


def _extract_tool_call(response: anthropic.types.Message) -> dict[str, Any] | None:
    """Extract the categorize_email tool input from the API response."""
    for block in response.content:
        if block.type == "tool_use" and block.name == TOOL_NAME:
            return block.input
    return None


def _validate_tool_call(data: dict[str, Any], context: UserContext) -> str | None:
    """Return an error message if the tool call is unusable, else None."""
    missing = [f for f in ("category", "urgency_score") if f not in data]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"

    if data["category"] not in EMAIL_CATEGORIES:
        return f"Invalid category: '{data['category']}'"

    urgency = data["urgency_score"]
    if isinstance(urgency, bool) or not isinstance(urgency, int | float) or not 1 <= urgency <= 10:
        return f"Invalid urgency_score: {urgency}. Must be a number between 1 and 10"

    relationship_id = data.get("relationship_id")
    if relationship_id and relationship_id not in {rel.id for rel in context.relationships}:
        return f"Unknown relationship_id: '{relationship_id}'"

    return None
