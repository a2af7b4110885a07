"""Learned sender -> category patterns.

After the analyzer categorizes messages, observations (sender, category) are
aggregated per domain (or per exact address). A sender that produced enough
consistently-categorized messages becomes a pattern; the pre-filter can then
skip analysis for future messages from it once the pattern's confidence
reaches the skip threshold.

Patterns are stored per user as a JSON list on the users row.

Usage:
    from mailtriage.classifier.sender_patterns import SenderPatternService

    service = SenderPatternService(store, config.pattern_learning)
    created = await service.learn_from_observations(user_id, observations)
    patterns = await service.get_patterns(user_id)
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from mailtriage.classifier.patterns import extract_domain
from mailtriage.core.errors import DatabaseError
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.config_schema import PatternLearningConfig
    from mailtriage.db.store import DatabaseStore

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SenderPattern:
    """A learned sender (domain or exact address) -> category mapping."""

    pattern: str
    is_domain: bool
    category: str
    confidence: float
    sample_size: int
    updated_at: str

    def matches(self, sender_email: str) -> bool:
        """Whether this pattern applies to the given sender address."""
        if self.is_domain:
            return extract_domain(sender_email) == self.pattern
        return sender_email.strip().lower() == self.pattern

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SenderPattern:
        return cls(
            pattern=str(data["pattern"]).lower(),
            is_domain=bool(data.get("is_domain", True)),
            category=str(data["category"]),
            confidence=float(data.get("confidence", 0.0)),
            sample_size=int(data.get("sample_size", 0)),
            updated_at=str(data.get("updated_at", "")),
        )


@dataclass(frozen=True, slots=True)
class LearningObservation:
    """One analyzed message: who sent it and what category it got."""

    sender_email: str
    category: str


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _pattern_from_counts(
    key: str,
    counts: Counter[str],
    config: PatternLearningConfig,
) -> SenderPattern | None:
    """Build a pattern from one sender's category counts, if they qualify."""
    total = sum(counts.values())
    if total < config.min_sample_size:
        return None

    category, dominant = counts.most_common(1)[0]
    consistency = dominant / total
    if consistency < config.min_consistency:
        return None

    boost = (total - config.min_sample_size) * config.confidence_boost_per_sample
    confidence = min(consistency + boost, config.max_confidence)

    return SenderPattern(
        pattern=key,
        is_domain=config.prefer_domain_patterns,
        category=category,
        confidence=round(confidence, 4),
        sample_size=total,
        updated_at=_now_iso(),
    )


def _merge(
    existing: SenderPattern,
    learned: SenderPattern,
    config: PatternLearningConfig,
) -> SenderPattern:
    # A conflicting category only wins when it is more confident
    if existing.category != learned.category:
        return learned if learned.confidence > existing.confidence else existing

    return SenderPattern(
        pattern=existing.pattern,
        is_domain=existing.is_domain,
        category=existing.category,
        confidence=round(
            min(existing.confidence + config.confidence_boost_per_sample, config.max_confidence),
            4,
        ),
        sample_size=existing.sample_size + learned.sample_size,
        updated_at=_now_iso(),
    )


def learn_patterns(
    existing: list[SenderPattern],
    observations: list[LearningObservation],
    config: PatternLearningConfig,
) -> tuple[list[SenderPattern], int]:
    """Fold a batch of observations into an existing pattern list.

    Args:
        existing: Patterns learned so far
        observations: Newly analyzed (sender, category) pairs
        config: Pattern learning thresholds

    Returns:
        Tuple of (pruned pattern list, number of newly created patterns)
    """
    aggregates: dict[str, Counter[str]] = {}
    for obs in observations:
        domain = extract_domain(obs.sender_email)
        if not domain:
            continue
        key = domain if config.prefer_domain_patterns else obs.sender_email.strip().lower()
        aggregates.setdefault(key, Counter())[obs.category] += 1

    by_key = {pattern.pattern: pattern for pattern in existing}
    created = 0

    for key, counts in aggregates.items():
        learned = _pattern_from_counts(key, counts, config)
        if learned is None:
            continue

        current = by_key.get(key)
        if current is None:
            by_key[key] = learned
            created += 1
            logger.debug(
                "sender_pattern_created",
                pattern=key,
                category=learned.category,
                confidence=learned.confidence,
            )
        else:
            by_key[key] = _merge(current, learned, config)

    patterns = sorted(
        by_key.values(),
        key=lambda p: (p.confidence, p.sample_size),
        reverse=True,
    )
    if len(patterns) > config.max_patterns_per_user:
        logger.info(
            "sender_patterns_pruned",
            kept=config.max_patterns_per_user,
            dropped=len(patterns) - config.max_patterns_per_user,
        )
        patterns = patterns[: config.max_patterns_per_user]

    return patterns, created


class SenderPatternService:
    """Loads, learns and clears a user's sender patterns through the store."""

    def __init__(self, store: DatabaseStore, config: PatternLearningConfig) -> None:
        self._store = store
        self._config = config

    async def get_patterns(self, user_id: str) -> list[SenderPattern]:
        """Return the user's patterns, or [] when they cannot be loaded.

        A load failure only means more messages go to full analysis.
        """
        try:
            raw = await self._store.get_sender_patterns(user_id)
        except DatabaseError as e:
            logger.error("sender_patterns_load_failed", user_id=user_id, error=str(e))
            return []

        patterns = []
        for item in raw:
            try:
                patterns.append(SenderPattern.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("sender_pattern_invalid", user_id=user_id, error=str(e))
        return patterns

    async def learn_from_observations(
        self,
        user_id: str,
        observations: list[LearningObservation],
    ) -> int:
        """Learn from analyzed messages and persist the merged pattern list.

        Returns:
            Number of newly created patterns

        Raises:
            DatabaseError: If the patterns cannot be saved
        """
        if not observations:
            return 0

        existing = await self.get_patterns(user_id)
        patterns, created = learn_patterns(existing, observations, self._config)
        await self._store.save_sender_patterns(user_id, [p.to_dict() for p in patterns])

        logger.info(
            "sender_patterns_learned",
            user_id=user_id,
            observations=len(observations),
            created=created,
            total=len(patterns),
        )
        return created

    async def clear_patterns(self, user_id: str) -> None:
        """Remove every learned pattern for the user."""
        await self._store.save_sender_patterns(user_id, [])
        logger.info("sender_patterns_cleared", user_id=user_id)
