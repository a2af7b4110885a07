"""Tests for the Claude-backed analyzer.

The Anthropic client is mocked; responses are built from SimpleNamespace
blocks shaped like the SDK's content blocks.
"""

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import anthropic
import pytest

from mailtriage.classifier.analyzer import UserContext
from mailtriage.classifier.claude_analyzer import TOOL_NAME, ClaudeAnalyzer, _parse_tool_call
from mailtriage.config_schema import AppConfig
from mailtriage.core.errors import AnalysisError
from mailtriage.db.store import DatabaseStore, Email, Relationship


def _make_tool_use_block(tool_input: dict[str, Any], name: str = TOOL_NAME) -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id="toolu_1", name=name, input=tool_input)


def _make_response(*blocks: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(content=list(blocks), stop_reason="tool_use")


def _client(response: Any = None, side_effect: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response, side_effect=side_effect)
    return client


@pytest.fixture
async def email(store: DatabaseStore) -> Email:
    email = Email(
        id="msg-1",
        user_id="user-1",
        sender_email="jane@acme.example",
        sender_name="Jane",
        subject="Contract renewal",
        body_text="Can we sign the renewal by Friday?",
        analysis_error="previous failure",
    )
    await store.save_email(email)
    return email


@pytest.fixture
def context() -> UserContext:
    return UserContext(
        user_id="user-1",
        relationships=(
            Relationship(id="rel-1", user_id="user-1", name="Acme", email="jane@acme.example"),
        ),
    )


class TestSuccessfulAnalysis:
    async def test_persists_result_and_clears_error(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
    ) -> None:
        client = _client(
            _make_response(
                _make_tool_use_block(
                    {
                        "category": "client_pipeline",
                        "urgency_score": 8,
                        "relationship_id": "rel-1",
                        "reasoning": "Client asks for a signature by Friday",
                    }
                )
            )
        )

        outcome = await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)

        assert outcome.success
        assert outcome.category == "client_pipeline"
        assert outcome.urgency_score == 8

        saved = await store.get_email("msg-1")
        assert saved.category == "client_pipeline"
        assert saved.urgency_score == 8
        assert saved.priority_score == 8
        assert saved.relationship_id == "rel-1"
        assert saved.analysis_error is None
        assert saved.analyzed_at is not None

    async def test_request_forces_tool_and_includes_context(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
    ) -> None:
        client = _client(
            _make_response(
                _make_tool_use_block(
                    {"category": "finance", "urgency_score": 3, "reasoning": "Invoice"}
                )
            )
        )

        await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)

        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": TOOL_NAME}
        assert kwargs["model"] == sample_config.analyzer.model
        prompt = kwargs["messages"][0]["content"]
        assert "Subject: Contract renewal" in prompt
        assert "- rel-1: Acme <jane@acme.example> (normal)" in prompt

    async def test_body_is_truncated(
        self, store: DatabaseStore, context: UserContext
    ) -> None:
        config = AppConfig(analyzer={"max_body_chars": 200})
        long_email = Email(id="msg-2", user_id="user-1", body_text="x" * 1000)
        client = _client(_make_response())

        await ClaudeAnalyzer(client, store, config).analyze(long_email, context)

        prompt = client.messages.create.await_args.kwargs["messages"][0]["content"]
        assert prompt.endswith("\n" + "x" * 200)


class TestInvalidToolCalls:
    @pytest.mark.parametrize(
        ("tool_input", "error"),
        [
            ({"urgency_score": 5, "reasoning": "x"}, "Missing required fields: category"),
            (
                {"category": "spam", "urgency_score": 5, "reasoning": "x"},
                "Invalid category: 'spam'",
            ),
            (
                {"category": "finance", "urgency_score": 11, "reasoning": "x"},
                "Invalid urgency_score: 11. Must be a number between 1 and 10",
            ),
            (
                {"category": "finance", "urgency_score": True, "reasoning": "x"},
                "Invalid urgency_score: True. Must be a number between 1 and 10",
            ),
            (
                {
                    "category": "finance",
                    "urgency_score": 5,
                    "relationship_id": "rel-999",
                    "reasoning": "x",
                },
                "Unknown relationship_id: 'rel-999'",
            ),
        ],
    )
    async def test_rejected_and_not_persisted(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
        tool_input: dict[str, Any],
        error: str,
    ) -> None:
        client = _client(_make_response(_make_tool_use_block(tool_input)))

        outcome = await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)

        assert not outcome.success
        assert outcome.error == error
        assert (await store.get_email("msg-1")).analysis_error == "previous failure"

    async def test_no_tool_call(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
    ) -> None:
        client = _client(_make_response(SimpleNamespace(type="text", text="I think finance")))

        outcome = await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)

        assert outcome.error == "No tool call in response"


class TestApiErrors:
    async def test_rate_limit(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
    ) -> None:
        client = _client(
            side_effect=anthropic.RateLimitError(
                message="rate limited",
                response=MagicMock(status_code=429, headers={}),
                body=None,
            )
        )

        outcome = await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)

        assert not outcome.success
        assert outcome.error.startswith("Rate limited after SDK retries")

    async def test_connection_error(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
    ) -> None:
        client = _client(side_effect=anthropic.APIConnectionError(request=MagicMock()))

        outcome = await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)

        assert outcome.error.startswith("API connection error after SDK retries")

    async def test_status_error(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
    ) -> None:
        client = _client(
            side_effect=anthropic.InternalServerError(
                message="overloaded",
                response=MagicMock(status_code=529, headers={}),
                body=None,
            )
        )

        outcome = await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)

        assert outcome.error == "API status error 529: overloaded"

    async def test_unexpected_errors_propagate(
        self,
        store: DatabaseStore,
        sample_config: AppConfig,
        email: Email,
        context: UserContext,
    ) -> None:
        client = _client(side_effect=ValueError("bug"))

        with pytest.raises(ValueError):
            await ClaudeAnalyzer(client, store, sample_config).analyze(email, context)


class TestParseToolCall:
    def test_error_carries_email_id(self, context: UserContext) -> None:
        with pytest.raises(AnalysisError, match="No tool call") as exc_info:
            _parse_tool_call(_make_response(), context, "msg-7")

        assert exc_info.value.email_id == "msg-7"

    def test_ignores_other_tools(self, context: UserContext) -> None:
        response = _make_response(
            _make_tool_use_block({"category": "finance"}, name="other_tool"),
            _make_tool_use_block({"category": "finance", "urgency_score": 2, "reasoning": "x"}),
        )

        assert _parse_tool_call(response, context, "msg-7")["urgency_score"] == 2
