"""Pre-filter deciding whether a message needs full AI analysis.

Rules are evaluated in strict priority order and the first match wins:
1. Excluded platform label (spam/trash/draft) -> skip, no category
2. Fully automated sender address -> skip, fallback category
3. Known sender domain (exact, then two-level parent) -> skip, table category
4. Known local-part prefix (exact, then prefix-of) -> skip, table category
5. Learned per-user sender pattern at or above the skip threshold -> skip
6. Otherwise -> analyze

There are no error states: the worst outcome is "analyze", which is always
safe, just costlier.

Usage:
    from mailtriage.classifier.prefilter import PreFilter

    prefilter = PreFilter(user_patterns, config.prefilter)
    result = prefilter.filter(email)
    if not result.should_analyze:
        # Use result.category / result.confidence directly
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from mailtriage.classifier.patterns import (
    AUTO_CATEGORIZE_DOMAINS,
    AUTO_CATEGORIZE_PREFIXES,
    AUTOMATED_SENDER_PATTERNS,
    extract_domain,
    extract_local_part,
    parent_domain,
)
from mailtriage.config_schema import PreFilterConfig
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.classifier.sender_patterns import SenderPattern
    from mailtriage.db.store import Email

logger = get_logger(__name__)

PreFilterRule = Literal[
    "excluded_label",
    "automated_sender",
    "known_domain",
    "email_prefix",
    "learned_pattern",
]


@dataclass(frozen=True, slots=True)
class PreFilterResult:
    """Outcome of pre-filtering one message.

    Attributes:
        should_analyze: True when the message must go to full analysis
        skip_reason: Human-readable reason when skipped
        provenance: Which rule fired (None when analyzing)
        category: Assigned category, if the rule assigns one
        confidence: Confidence in the assigned category (0-1)
        signals: Descriptions of the signals that contributed
    """

    should_analyze: bool
    skip_reason: str | None = None
    provenance: PreFilterRule | None = None
    category: str | None = None
    confidence: float = 0.0
    signals: tuple[str, ...] = ()

    @property
    def decision(self) -> str:
        return "analyze" if self.should_analyze else "skip"

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision,
            "skip_reason": self.skip_reason,
            "provenance": self.provenance,
            "category": self.category,
            "confidence": self.confidence,
            "signals": list(self.signals),
        }


ANALYZE = PreFilterResult(should_analyze=True)


@dataclass
class PreFilterStats:
    """Aggregate counts for a batch, for observability."""

    total: int = 0
    to_analyze: int = 0
    skipped: int = 0
    auto_categorized: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    auto_categories: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "to_analyze": self.to_analyze,
            "skipped": self.skipped,
            "auto_categorized": self.auto_categorized,
            "skip_reasons": dict(self.skip_reasons),
            "auto_categories": dict(self.auto_categories),
        }


@dataclass
class PreFilterBatch:
    """Messages of a batch partitioned by pre-filter outcome."""

    to_analyze: list[Email] = field(default_factory=list)
    auto_categorized: list[tuple[Email, PreFilterResult]] = field(default_factory=list)
    skipped: list[tuple[Email, PreFilterResult]] = field(default_factory=list)
    stats: PreFilterStats = field(default_factory=PreFilterStats)


class PreFilter:
    """Rule-based gate in front of the AI analyzer.

    Holds only injected configuration and the user's learned patterns, so a
    fresh instance can be built per user and per run.
    """

    def __init__(
        self,
        user_patterns: Iterable[SenderPattern] = (),
        config: PreFilterConfig | None = None,
    ) -> None:
        self._config = config or PreFilterConfig()
        self._excluded_labels = frozenset(self._config.excluded_labels)
        self._user_patterns: list[SenderPattern] = list(user_patterns)
        self._rules: tuple[Callable[[Email], PreFilterResult | None], ...] = (
            self._check_excluded_label,
            self._check_automated_sender,
            self._check_domain,
            self._check_prefix,
            self._check_learned_pattern,
        )

    def update_user_patterns(self, patterns: Iterable[SenderPattern]) -> None:
        """Replace the learned patterns, e.g. after a learning pass."""
        self._user_patterns = list(patterns)
        logger.debug("prefilter_patterns_updated", count=len(self._user_patterns))

    def filter(self, email: Email) -> PreFilterResult:
        """Decide whether one message needs full analysis."""
        for rule in self._rules:
            result = rule(email)
            if result is not None:
                logger.debug(
                    "prefilter_skip",
                    email_id=email.id,
                    provenance=result.provenance,
                    category=result.category,
                    confidence=result.confidence,
                    signals=list(result.signals),
                )
                return result

        logger.debug("prefilter_analyze", email_id=email.id)
        return ANALYZE

    def filter_batch(self, emails: Iterable[Email]) -> PreFilterBatch:
        """Filter many messages and collect aggregate statistics."""
        start_time = time.monotonic()
        batch = PreFilterBatch()
        skip_reasons: Counter[str] = Counter()
        auto_categories: Counter[str] = Counter()

        for email in emails:
            result = self.filter(email)
            batch.stats.total += 1

            if result.should_analyze:
                batch.to_analyze.append(email)
                continue

            if result.skip_reason:
                skip_reasons[result.skip_reason] += 1

            if result.category:
                batch.auto_categorized.append((email, result))
                auto_categories[result.category] += 1
            else:
                batch.skipped.append((email, result))

        stats = batch.stats
        stats.to_analyze = len(batch.to_analyze)
        stats.auto_categorized = len(batch.auto_categorized)
        stats.skipped = len(batch.skipped)
        stats.skip_reasons = dict(skip_reasons)
        stats.auto_categories = dict(auto_categories)

        logger.info(
            "prefilter_batch_complete",
            total=stats.total,
            to_analyze=stats.to_analyze,
            auto_categorized=stats.auto_categorized,
            skipped=stats.skipped,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        return batch

    # ------------------------------------------------------------------
    # Rules, in priority order
    # ------------------------------------------------------------------

    def _check_excluded_label(self, email: Email) -> PreFilterResult | None:
        for label in email.labels:
            if label.upper() in self._excluded_labels:
                return PreFilterResult(
                    should_analyze=False,
                    skip_reason=f"Excluded label ({label.upper()})",
                    provenance="excluded_label",
                    signals=(f"label:{label.upper()}",),
                )
        return None

    def _check_automated_sender(self, email: Email) -> PreFilterResult | None:
        sender = (email.sender_email or "").strip().lower()
        if not sender:
            return None
        for pattern in AUTOMATED_SENDER_PATTERNS:
            if pattern.search(sender):
                return PreFilterResult(
                    should_analyze=False,
                    skip_reason=f"Automated sender ({pattern.pattern})",
                    provenance="automated_sender",
                    category=self._config.automated_sender_category,
                    confidence=self._config.automated_sender_confidence,
                    signals=(f"sender_pattern:{pattern.pattern}",),
                )
        return None

    def _check_domain(self, email: Email) -> PreFilterResult | None:
        domain = extract_domain(email.sender_email)
        if not domain:
            return None

        for candidate in (domain, parent_domain(domain)):
            if candidate and candidate in AUTO_CATEGORIZE_DOMAINS:
                return PreFilterResult(
                    should_analyze=False,
                    skip_reason="Known domain pattern",
                    provenance="known_domain",
                    category=AUTO_CATEGORIZE_DOMAINS[candidate],
                    confidence=self._config.domain_confidence,
                    signals=(f"domain:{candidate}",),
                )
        return None

    def _check_prefix(self, email: Email) -> PreFilterResult | None:
        local_part = extract_local_part(email.sender_email)
        if not local_part:
            return None

        matched = local_part if local_part in AUTO_CATEGORIZE_PREFIXES else None
        if matched is None:
            matched = next(
                (prefix for prefix in AUTO_CATEGORIZE_PREFIXES if local_part.startswith(prefix)),
                None,
            )
        if matched is None:
            return None

        return PreFilterResult(
            should_analyze=False,
            skip_reason="Email prefix pattern",
            provenance="email_prefix",
            category=AUTO_CATEGORIZE_PREFIXES[matched],
            confidence=self._config.prefix_confidence,
            signals=(f"prefix:{matched}",),
        )

    def _check_learned_pattern(self, email: Email) -> PreFilterResult | None:
        sender = email.sender_email or ""
        if not sender:
            return None

        pattern = next((p for p in self._user_patterns if p.matches(sender)), None)
        if pattern is None or pattern.confidence < self._config.skip_ai_threshold:
            return None

        return PreFilterResult(
            should_analyze=False,
            skip_reason=f"Learned pattern ({pattern.sample_size} samples)",
            provenance="learned_pattern",
            category=pattern.category,
            confidence=pattern.confidence,
            signals=(f"learned:{pattern.pattern}",),
        )
