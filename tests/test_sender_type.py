"""Tests for sender type detection.

Covers the three tiers (headers, address, content), their precedence,
confidence values, and the unknown outcome.
"""

from unittest.mock import MagicMock, patch

import pytest

from mailtriage.classifier.sender_type import UNKNOWN_REASONING, SenderTypeDetector
from mailtriage.db.store import Email


def _email(
    sender: str = "person@acme-industries.example",
    headers: dict[str, str] | None = None,
    subject: str = "",
    body: str = "",
) -> Email:
    return Email(
        id="msg-1",
        user_id="user-1",
        sender_email=sender,
        headers=headers or {},
        subject=subject,
        body_text=body,
    )


@pytest.fixture
def detector() -> SenderTypeDetector:
    return SenderTypeDetector()


class TestHeaderTier:
    """Tests for header signals."""

    def test_list_unsubscribe_is_broadcast(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(headers={"List-Unsubscribe": "<mailto:unsub@x.example>"}))

        assert result.sender_type == "broadcast"
        assert result.confidence == 0.95
        assert result.source == "header"
        assert result.broadcast_subtype == "company_newsletter"
        assert result.signals == ("List-Unsubscribe header present",)

    def test_header_names_are_case_insensitive(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(headers={"list-id": "<team.lists.example>"}))

        assert result.sender_type == "broadcast"
        assert result.confidence == 0.90

    def test_esp_signature_in_received(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(
            _email(headers={"Received": "from mta-42.sendgrid.net by mx.example"})
        )

        assert result.sender_type == "broadcast"
        assert result.confidence == 0.85
        assert "sendgrid" in result.reasoning

    def test_headers_beat_address(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(
            _email(sender="noreply@github.com", headers={"List-Unsubscribe": "<https://x>"})
        )
        assert result.source == "header"
        assert result.confidence == 0.95

    def test_empty_header_value_is_ignored(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(headers={"List-Unsubscribe": ""}))
        assert result.sender_type == "unknown"


class TestAddressTier:
    """Tests for address signals and the fast path."""

    def test_known_broadcast_domain(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(sender="writer@substack.com"))

        assert result.sender_type == "broadcast"
        assert result.broadcast_subtype == "newsletter_author"
        assert result.confidence == 0.95
        assert result.source == "email_pattern"

    def test_transactional_prefix(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(sender="noreply@shop.example"))

        assert result.broadcast_subtype == "transactional"
        assert result.confidence == 0.90

    def test_newsletter_prefix_with_separator(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(sender="newsletter.team@shop.example"))

        assert result.broadcast_subtype == "company_newsletter"
        assert result.confidence == 0.80

    def test_prefix_requires_token_boundary(self, detector: SenderTypeDetector) -> None:
        """'newsom' starts with 'news' but is not a token match."""
        assert detector.detect_from_address("newsom@state.example") is None

    def test_fast_path(self, detector: SenderTypeDetector) -> None:
        result = detector.detect_from_address("alerts@bank.example")

        assert result is not None
        assert result.sender_type == "broadcast"
        assert result.broadcast_subtype == "transactional"

    def test_fast_path_no_signal(self, detector: SenderTypeDetector) -> None:
        assert detector.detect_from_address("jane@acme-industries.example") is None


class TestContentTier:
    """Tests for content signals."""

    def test_two_broadcast_hits(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(
            _email(body="View in browser. Click here to unsubscribe from this list.")
        )

        assert result.sender_type == "broadcast"
        assert result.confidence == 0.8
        assert result.source == "email_pattern"

    def test_broadcast_confidence_is_capped(self, detector: SenderTypeDetector) -> None:
        body = (
            "View in browser. Unsubscribe. Manage your preferences. "
            "Copyright 2026. All rights reserved. Privacy policy."
        )
        result = detector.detect(_email(body=body))

        assert result.sender_type == "broadcast"
        assert result.confidence == 0.85
        # Only the first three patterns are listed as signals
        assert len(result.signals) == 3

    def test_single_broadcast_hit_is_not_enough(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(body="Reply here to unsubscribe me from the thread."))
        assert result.sender_type == "unknown"

    def test_cold_outreach(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(
            _email(
                subject="Quick question",
                body="I came across your company. Do you have 15 minutes this week?",
            )
        )

        assert result.sender_type == "cold_outreach"
        assert result.confidence == 0.75
        assert result.broadcast_subtype is None

    def test_two_cold_outreach_hits(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(subject="Quick question", body="I noticed your post."))
        assert result.sender_type == "cold_outreach"
        assert result.confidence == 0.7

    def test_single_opportunity_hit(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(_email(subject="Journalist query: fintech founders wanted"))

        assert result.sender_type == "opportunity"
        assert result.confidence == 0.70

    @pytest.mark.parametrize("subject", ["HARO: sources needed", "RFP for warehouse software"])
    def test_opportunity_acronyms(self, detector: SenderTypeDetector, subject: str) -> None:
        assert detector.detect(_email(subject=subject)).sender_type == "opportunity"

    def test_acronyms_inside_words_do_not_match(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(
            _email(subject="Lunch with Harold", body="The Pharaoh exhibit closes Sunday.")
        )

        assert result.sender_type == "unknown"

    def test_regex_timeout_counts_as_no_match(self, detector: SenderTypeDetector) -> None:
        slow = MagicMock()
        slow.pattern = "slow"
        slow.search.side_effect = TimeoutError

        with patch(
            "mailtriage.classifier.sender_type.BROADCAST_CONTENT_PATTERNS",
            (slow, slow),
        ):
            result = detector.detect(_email(body="View in browser. Unsubscribe."))

        assert result.sender_type == "unknown"
        assert slow.search.call_count == 2


class TestUnknown:
    """No tier fired."""

    def test_plain_personal_email(self, detector: SenderTypeDetector) -> None:
        result = detector.detect(
            _email(subject="Dinner on Friday?", body="Are you free around 7?")
        )

        assert result.sender_type == "unknown"
        assert result.confidence == 0.0
        assert result.reasoning == UNKNOWN_REASONING
        assert result.signals == ()

    def test_to_dict(self, detector: SenderTypeDetector) -> None:
        data = detector.detect(_email(sender="writer@substack.com")).to_dict()

        assert data["sender_type"] == "broadcast"
        assert data["broadcast_subtype"] == "newsletter_author"
        assert data["signals"] == ["Known broadcast domain: substack.com"]
