"""Tests for learned sender patterns."""

from unittest.mock import AsyncMock

import pytest

from mailtriage.classifier.sender_patterns import (
    LearningObservation,
    SenderPattern,
    SenderPatternService,
    learn_patterns,
)
from mailtriage.config_schema import PatternLearningConfig
from mailtriage.core.errors import DatabaseError
from mailtriage.db.store import DatabaseStore


def _obs(sender: str, category: str, times: int = 1) -> list[LearningObservation]:
    return [LearningObservation(sender, category)] * times


@pytest.fixture
def config() -> PatternLearningConfig:
    return PatternLearningConfig()


class TestLearnPatterns:
    """Tests for the pure learning function."""

    def test_creates_pattern_at_min_sample_size(self, config: PatternLearningConfig) -> None:
        patterns, created = learn_patterns([], _obs("a@acme.example", "client_pipeline", 3), config)

        assert created == 1
        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern == "acme.example"
        assert pattern.is_domain
        assert pattern.category == "client_pipeline"
        # Full consistency is capped at max_confidence
        assert pattern.confidence == 0.98
        assert pattern.sample_size == 3

    def test_confidence_from_consistency_and_samples(self, config: PatternLearningConfig) -> None:
        observations = _obs("a@acme.example", "client_pipeline", 9) + _obs(
            "b@acme.example", "finance", 1
        )
        patterns, _ = learn_patterns([], observations, config)

        # 0.9 consistency + (10 - 3) x 0.02 boost, capped at 0.98
        assert patterns[0].confidence == 0.98
        assert patterns[0].sample_size == 10

    def test_too_few_samples(self, config: PatternLearningConfig) -> None:
        patterns, created = learn_patterns([], _obs("a@acme.example", "finance", 2), config)
        assert patterns == []
        assert created == 0

    def test_inconsistent_sender(self, config: PatternLearningConfig) -> None:
        observations = _obs("a@acme.example", "finance", 2) + _obs("a@acme.example", "shopping", 2)
        patterns, _ = learn_patterns([], observations, config)
        assert patterns == []

    def test_merge_same_category_bumps_confidence(self, config: PatternLearningConfig) -> None:
        existing = SenderPattern("acme.example", True, "finance", 0.9, 5, "2026-01-01")
        patterns, created = learn_patterns([existing], _obs("x@acme.example", "finance", 3), config)

        assert created == 0
        assert patterns[0].confidence == 0.92
        assert patterns[0].sample_size == 8

    def test_conflicting_category_needs_higher_confidence(
        self, config: PatternLearningConfig
    ) -> None:
        existing = SenderPattern("acme.example", True, "finance", 0.98, 40, "2026-01-01")
        patterns, _ = learn_patterns([existing], _obs("x@acme.example", "shopping", 3), config)

        assert patterns[0].category == "finance"

    def test_address_patterns_when_domains_disabled(self) -> None:
        config = PatternLearningConfig(prefer_domain_patterns=False)
        patterns, _ = learn_patterns([], _obs("Jane@Acme.example", "client_pipeline", 3), config)

        assert patterns[0].pattern == "jane@acme.example"
        assert not patterns[0].is_domain

    def test_prunes_to_max_keeping_most_confident(self) -> None:
        config = PatternLearningConfig(max_patterns_per_user=1)
        observations = _obs("a@one.example", "finance", 3) + _obs("a@two.example", "finance", 8)

        patterns, created = learn_patterns([], observations, config)

        assert created == 2
        assert [p.pattern for p in patterns] == ["two.example"]


class TestSenderPattern:
    """Tests for matching and serialization."""

    def test_domain_match(self) -> None:
        pattern = SenderPattern("acme.example", True, "finance", 0.9, 5, "")
        assert pattern.matches("Bob@ACME.example")
        assert not pattern.matches("bob@sub.acme.example")

    def test_round_trip_through_dict(self) -> None:
        pattern = SenderPattern("acme.example", True, "finance", 0.9, 5, "2026-01-01")
        assert SenderPattern.from_dict(pattern.to_dict()) == pattern


class TestSenderPatternService:
    """Tests for persistence through the store."""

    async def test_learn_and_load(self, store: DatabaseStore, config: PatternLearningConfig) -> None:
        service = SenderPatternService(store, config)

        created = await service.learn_from_observations(
            "user-1", _obs("a@acme.example", "client_pipeline", 4)
        )
        patterns = await service.get_patterns("user-1")

        assert created == 1
        assert [p.pattern for p in patterns] == ["acme.example"]

    async def test_clear(self, store: DatabaseStore, config: PatternLearningConfig) -> None:
        service = SenderPatternService(store, config)
        await service.learn_from_observations("user-1", _obs("a@acme.example", "finance", 3))

        await service.clear_patterns("user-1")

        assert await service.get_patterns("user-1") == []

    async def test_load_failure_returns_empty(self, config: PatternLearningConfig) -> None:
        store = AsyncMock()
        store.get_sender_patterns.side_effect = DatabaseError("disk I/O error")

        assert await SenderPatternService(store, config).get_patterns("user-1") == []

    async def test_unknown_user_save_raises(
        self, store: DatabaseStore, config: PatternLearningConfig
    ) -> None:
        service = SenderPatternService(store, config)
        with pytest.raises(DatabaseError):
            await service.learn_from_observations("nobody", _obs("a@acme.example", "finance", 3))
