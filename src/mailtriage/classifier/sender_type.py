"""Sender type detection: who is this correspondent to the user?

Classifies a message's sender as direct, broadcast, cold_outreach,
opportunity or unknown. Three tiers run in priority order and the first
confident tier wins:

1. Header signals: List-Unsubscribe (0.95), List-Id (0.90), bulk-mail
   service signature in Received / X-Mailer / Message-Id (0.85)
2. Address signals: known broadcast domain (0.95), broadcast local-part
   prefix (0.90 transactional, 0.80 otherwise)
3. Content signals: regex hit counts over subject + body

"unknown" with confidence 0 is an expected outcome, not an error. The
detector never assigns "direct"; that type is reserved for callers that
confirm a real two-way correspondence.

Content regexes run under a timeout; a timeout counts as no match.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import regex

from mailtriage.classifier.patterns import (
    BROADCAST_CONTENT_PATTERNS,
    BROADCAST_DOMAINS,
    BROADCAST_PREFIXES,
    COLD_OUTREACH_PATTERNS,
    ESP_HEADER_NAMES,
    ESP_SIGNATURES,
    LIST_ID_HEADER,
    LIST_UNSUBSCRIBE_HEADER,
    OPPORTUNITY_PATTERNS,
    PREFIX_SEPARATORS,
    REGEX_TIMEOUT,
    BroadcastSubtype,
    extract_domain,
    extract_local_part,
)
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.db.store import Email

logger = get_logger(__name__)

SenderType = Literal["direct", "broadcast", "cold_outreach", "opportunity", "unknown"]
SenderTypeSource = Literal["header", "email_pattern"]

# Content tier thresholds
MIN_BROADCAST_HITS = 2
MIN_COLD_OUTREACH_HITS = 2
MAX_CONTENT_SIGNALS = 3


@dataclass(frozen=True, slots=True)
class SenderTypeResult:
    """Outcome of sender type detection.

    Attributes:
        sender_type: Detected type
        confidence: 0-1
        source: Which signal family fired
        reasoning: Human-readable explanation
        broadcast_subtype: Only set when sender_type is "broadcast"
        signals: Descriptions of contributing signals
    """

    sender_type: SenderType
    confidence: float
    source: SenderTypeSource
    reasoning: str
    broadcast_subtype: BroadcastSubtype | None = None
    signals: tuple[str, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender_type": self.sender_type,
            "broadcast_subtype": self.broadcast_subtype,
            "confidence": self.confidence,
            "source": self.source,
            "reasoning": self.reasoning,
            "signals": list(self.signals),
        }


UNKNOWN_REASONING = (
    "No clear signals to determine sender type. Will need AI analysis or user behavior."
)


def _broadcast(
    subtype: BroadcastSubtype,
    confidence: float,
    source: SenderTypeSource,
    reasoning: str,
    signals: list[str],
) -> SenderTypeResult:
    return SenderTypeResult(
        sender_type="broadcast",
        broadcast_subtype=subtype,
        confidence=confidence,
        source=source,
        reasoning=reasoning,
        signals=tuple(signals),
    )


def _matching_patterns(patterns: tuple[regex.Pattern[str], ...], content: str) -> list[str]:
    """Return the source of every pattern that matches the content."""
    matches = []
    for pattern in patterns:
        try:
            if pattern.search(content, timeout=REGEX_TIMEOUT):
                matches.append(pattern.pattern)
        except TimeoutError:
            logger.warning("content_pattern_timeout", pattern=pattern.pattern)
    return matches


def _prefix_matches(local_part: str, prefix: str) -> bool:
    if local_part == prefix:
        return True
    return any(local_part.startswith(prefix + sep) for sep in PREFIX_SEPARATORS)


class SenderTypeDetector:
    """Layered heuristic detector over headers, address and content.

    Stateless; one instance can be shared.
    """

    def __init__(self) -> None:
        self._tiers: tuple[Callable[[Email, list[str]], SenderTypeResult | None], ...] = (
            self._detect_from_headers,
            self._detect_from_email_address,
            self._detect_from_content,
        )

    def detect(self, email: Email) -> SenderTypeResult:
        """Detect the sender type of one message."""
        signals: list[str] = []

        for tier in self._tiers:
            result = tier(email, signals)
            if result is not None:
                logger.debug(
                    "sender_type_detected",
                    email_id=email.id,
                    sender_type=result.sender_type,
                    broadcast_subtype=result.broadcast_subtype,
                    confidence=result.confidence,
                    source=result.source,
                    signals=list(result.signals),
                )
                return result

        logger.debug("sender_type_unknown", email_id=email.id)
        return SenderTypeResult(
            sender_type="unknown",
            confidence=0.0,
            source="email_pattern",
            reasoning=UNKNOWN_REASONING,
            signals=tuple(signals),
        )

    def detect_from_address(self, sender_email: str) -> SenderTypeResult | None:
        """Fast path over the address only, for bulk pre-labeling.

        Returns:
            The address-tier result, or None when the address is not telling
        """
        return self._address_result(sender_email, [])

    # ------------------------------------------------------------------
    # Tiers, in priority order
    # ------------------------------------------------------------------

    def _detect_from_headers(self, email: Email, signals: list[str]) -> SenderTypeResult | None:
        headers = _lowercase_keys(email.headers)
        if not headers:
            return None

        if headers.get(LIST_UNSUBSCRIBE_HEADER):
            signals.append("List-Unsubscribe header present")
            return _broadcast(
                "company_newsletter",
                0.95,
                "header",
                "Email has List-Unsubscribe header, indicating a mailing list or newsletter.",
                signals,
            )

        if headers.get(LIST_ID_HEADER):
            signals.append("List-Id header present")
            return _broadcast(
                "company_newsletter",
                0.90,
                "header",
                "Email has List-Id header, indicating a mailing list.",
                signals,
            )

        delivery = " ".join(headers.get(name, "") for name in ESP_HEADER_NAMES).lower()
        for signature in ESP_SIGNATURES:
            if signature in delivery:
                signals.append(f"ESP detected in headers: {signature}")
                return _broadcast(
                    "company_newsletter",
                    0.85,
                    "header",
                    f"Email sent via email service provider ({signature}), "
                    "indicating bulk/marketing email.",
                    signals,
                )

        return None

    def _detect_from_email_address(
        self, email: Email, signals: list[str]
    ) -> SenderTypeResult | None:
        return self._address_result(email.sender_email or "", signals)

    def _address_result(self, sender_email: str, signals: list[str]) -> SenderTypeResult | None:
        domain = extract_domain(sender_email)
        if domain and domain in BROADCAST_DOMAINS:
            subtype = BROADCAST_DOMAINS[domain]
            signals.append(f"Known broadcast domain: {domain}")
            return _broadcast(
                subtype,
                0.95,
                "email_pattern",
                f"Sender domain {domain} is a known {subtype.replace('_', ' ')} platform.",
                signals,
            )

        local_part = extract_local_part(sender_email)
        if not local_part:
            return None

        for prefix, subtype in BROADCAST_PREFIXES.items():
            if _prefix_matches(local_part, prefix):
                signals.append(f"Broadcast email prefix: {prefix}")
                return _broadcast(
                    subtype,
                    0.90 if subtype == "transactional" else 0.80,
                    "email_pattern",
                    f'Email prefix "{local_part}" indicates '
                    f"{subtype.replace('_', ' ')} sender.",
                    signals,
                )

        return None

    def _detect_from_content(self, email: Email, signals: list[str]) -> SenderTypeResult | None:
        content = f"{email.subject or ''} {email.body_text or ''}"
        if not content.strip():
            return None

        broadcast_hits = _matching_patterns(BROADCAST_CONTENT_PATTERNS, content)
        if len(broadcast_hits) >= MIN_BROADCAST_HITS:
            signals.extend(
                f"Content pattern: {p}" for p in broadcast_hits[:MAX_CONTENT_SIGNALS]
            )
            return _broadcast(
                "company_newsletter",
                round(min(0.60 + len(broadcast_hits) * 0.1, 0.85), 2),
                "email_pattern",
                f"Email contains {len(broadcast_hits)} newsletter/broadcast indicators "
                "(unsubscribe links, view in browser, etc.).",
                signals,
            )

        outreach_hits = _matching_patterns(COLD_OUTREACH_PATTERNS, content)
        if len(outreach_hits) >= MIN_COLD_OUTREACH_HITS:
            signals.extend(
                f"Cold outreach pattern: {p}" for p in outreach_hits[:MAX_CONTENT_SIGNALS]
            )
            return SenderTypeResult(
                sender_type="cold_outreach",
                confidence=round(min(0.50 + len(outreach_hits) * 0.1, 0.75), 2),
                source="email_pattern",
                reasoning=(
                    f"Email contains {len(outreach_hits)} cold outreach indicators "
                    "(sales pitch, scheduling request, etc.)."
                ),
                signals=tuple(signals),
            )

        opportunity_hits = _matching_patterns(OPPORTUNITY_PATTERNS, content)
        if opportunity_hits:
            signals.append(f"Opportunity pattern: {opportunity_hits[0]}")
            return SenderTypeResult(
                sender_type="opportunity",
                confidence=0.70,
                source="email_pattern",
                reasoning=(
                    "Email appears to be from an opportunity/query list "
                    "(HARO, journalist query, etc.)."
                ),
                signals=tuple(signals),
            )

        return None


def _lowercase_keys(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    return {str(key).lower(): str(value) for key, value in headers.items()}
