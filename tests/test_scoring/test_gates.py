"""Tests for publish debouncing."""

from datetime import datetime, timedelta, timezone

import pytest

from src.scoring.config import ScoringConfig
from src.scoring.gates import should_publish, tier_index
from src.scoring.schemas import PublishReason, ScoreBreakdown, ScoreResult
from src.storage.schemas import PublishedScore

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _candidate(score: float, confidence: float) -> ScoreResult:
    return ScoreResult(
        score=score,
        confidence=confidence,
        provisional=False,
        breakdown=ScoreBreakdown(rating=score, signal=50.0, boost=0.0, reliability=1.0),
    )


def _published(score: float, confidence: float, age_seconds: float = 3600) -> PublishedScore:
    return PublishedScore(
        item_id="item_1",
        score=score,
        confidence=confidence,
        published_at=NOW - timedelta(seconds=age_seconds),
    )


class TestTierIndex:
    def test_counts_boundaries_at_or_below(self):
        tiers = [20, 40, 60]
        assert tier_index(10, tiers) == 0
        assert tier_index(20, tiers) == 1
        assert tier_index(59.9, tiers) == 2
        assert tier_index(99, tiers) == 3


class TestShouldPublish:
    """Tests for should_publish gate order."""

    def test_first_publish(self, scoring_config):
        decision = should_publish(None, _candidate(30, 10), NOW, config=scoring_config)
        assert decision.publish
        assert decision.reason == PublishReason.FIRST_PUBLISH

    def test_below_threshold_not_published(self, scoring_config):
        decision = should_publish(
            _published(52.0, 45.0), _candidate(52.3, 46.0), NOW, config=scoring_config
        )
        assert not decision.publish
        assert decision.reason == PublishReason.BELOW_THRESHOLD

    def test_score_delta(self, scoring_config):
        decision = should_publish(
            _published(52.0, 45.0), _candidate(52.6, 45.0), NOW, config=scoring_config
        )
        assert decision.publish
        assert decision.reason == PublishReason.SCORE_DELTA

    def test_confidence_delta(self, scoring_config):
        decision = should_publish(
            _published(52.0, 42.0), _candidate(52.1, 47.0), NOW, config=scoring_config
        )
        assert decision.publish
        assert decision.reason == PublishReason.CONFIDENCE_DELTA

    def test_quality_tier_crossing(self, scoring_config):
        decision = should_publish(
            _published(49.9, 45.0), _candidate(50.1, 45.0), NOW, config=scoring_config
        )
        assert decision.publish
        assert decision.reason == PublishReason.QUALITY_TIER

    def test_confidence_tier_crossing(self, scoring_config):
        decision = should_publish(
            _published(52.0, 39.9), _candidate(52.0, 40.1), NOW, config=scoring_config
        )
        assert decision.publish
        assert decision.reason == PublishReason.CONFIDENCE_TIER

    def test_frozen_never_published(self, scoring_config):
        decision = should_publish(
            None, _candidate(90, 90), NOW, frozen=True, config=scoring_config
        )
        assert not decision.publish
        assert decision.reason == PublishReason.FROZEN

    def test_no_observations_never_published(self, scoring_config):
        decision = should_publish(
            None, _candidate(28, 6), NOW, has_observations=False, config=scoring_config
        )
        assert not decision.publish
        assert decision.reason == PublishReason.NO_OBSERVATIONS

    def test_too_soon(self):
        config = ScoringConfig(min_republish_seconds=60)
        decision = should_publish(
            _published(20.0, 20.0, age_seconds=10), _candidate(80, 80), NOW, config=config
        )
        assert not decision.publish
        assert decision.reason == PublishReason.TOO_SOON

    @pytest.mark.parametrize("delta", [0.0, 0.1, 0.25, 0.49])
    def test_small_moves_inside_tier_suppressed(self, delta, scoring_config):
        decision = should_publish(
            _published(55.0, 55.0), _candidate(55.0 + delta, 55.0), NOW, config=scoring_config
        )
        assert not decision.publish
