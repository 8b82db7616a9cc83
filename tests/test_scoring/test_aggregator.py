"""Tests for score aggregation and confidence."""

import math
import random

import pytest

from src.errors import ComputationError
from src.scoring.aggregator import (
    boost_component,
    compute_confidence,
    compute_score,
    evidence_needed,
    rating_component,
)
from src.scoring.config import ScoringConfig
from src.storage.schemas import Evidence


class TestComponents:
    def test_rating_component_linear(self, scoring_config):
        assert rating_component(800, scoring_config) == 0.0
        assert rating_component(1400, scoring_config) == pytest.approx(50.0)
        assert rating_component(2000, scoring_config) == 100.0

    def test_rating_component_clamped(self, scoring_config):
        assert rating_component(-5000, scoring_config) == 0.0
        assert rating_component(9000, scoring_config) == 100.0

    def test_boost_diminishing_returns(self, scoring_config):
        values = [boost_component(n, scoring_config) for n in range(0, 20)]

        assert values[0] == 0.0
        gains = [b - a for a, b in zip(values, values[1:])]
        assert all(g > 0 for g in gains)
        assert all(later < earlier for earlier, later in zip(gains, gains[1:]))
        assert values[-1] < 100.0

    def test_boost_one(self, scoring_config):
        assert boost_component(1, scoring_config) == pytest.approx(
            100.0 * (1 - math.exp(-1 / 3.0))
        )


class TestConfidence:
    def test_fresh_item(self, scoring_config):
        assert compute_confidence(350, 0, 0, scoring_config) == pytest.approx(6.25)

    def test_monotonic_in_counts(self, scoring_config):
        previous = -1.0
        for n in range(0, 60):
            value = compute_confidence(200, n, n // 2, scoring_config)
            assert value >= previous
            previous = value

    def test_non_increasing_in_sigma(self, scoring_config):
        values = [compute_confidence(s, 10, 3, scoring_config) for s in range(50, 401, 25)]
        assert values == sorted(values, reverse=True)

    def test_bounded(self, scoring_config):
        assert compute_confidence(0, 10_000, 10_000, scoring_config) <= 100.0
        assert compute_confidence(10_000, 0, 0, scoring_config) >= 0.0


class TestComputeScore:
    """Tests for the aggregated score."""

    def test_default_item(self, scoring_config):
        result = compute_score(1200, 350, None, 0, config=scoring_config)

        assert result.score == pytest.approx(0.4 * (400 / 1200 * 100) + 0.3 * 50)
        assert result.breakdown.signal == 50.0
        assert result.breakdown.signal_observed is False
        assert result.provisional is True

    def test_reliability_scales_score(self, scoring_config):
        base = compute_score(1500, 200, 60, 2, avg_reliability=1.0, config=scoring_config)
        trusted = compute_score(1500, 200, 60, 2, avg_reliability=1.2, config=scoring_config)

        assert trusted.score == pytest.approx(min(100.0, base.score * 1.2))

    def test_reliability_clamped_to_bounds(self, scoring_config):
        result = compute_score(1500, 200, 60, 0, avg_reliability=9.0, config=scoring_config)
        assert result.breakdown.reliability == scoring_config.reliability_max

    def test_always_in_range(self, scoring_config):
        rng = random.Random(5)
        for _ in range(500):
            result = compute_score(
                mean=rng.uniform(-10_000, 10_000),
                sigma=rng.uniform(0, 1000),
                signal_avg=rng.choice([None, rng.uniform(-500, 500)]),
                boost_count=rng.uniform(0, 1000),
                avg_reliability=rng.uniform(0, 10),
                comparison_count=rng.randint(0, 1000),
                signal_count=rng.randint(0, 1000),
                config=scoring_config,
            )
            assert 0.0 <= result.score <= 100.0
            assert 0.0 <= result.confidence <= 100.0

    def test_established_item_not_provisional(self, scoring_config):
        result = compute_score(
            1600, 80, 70, 1, comparison_count=40, signal_count=10, config=scoring_config
        )
        assert result.provisional is False

    def test_single_opponent_stays_provisional(self, scoring_config):
        evidence = Evidence(
            comparisons=40, unique_opponents=1, signals=10, unique_signal_raters=4
        )

        result = compute_score(
            1600,
            80,
            70,
            1,
            comparison_count=40,
            signal_count=10,
            config=scoring_config,
            evidence=evidence,
        )

        assert result.provisional is True

    def test_broad_evidence_not_provisional(self, scoring_config):
        evidence = Evidence(
            comparisons=40, unique_opponents=12, signals=10, unique_signal_raters=4
        )

        result = compute_score(
            1600,
            80,
            70,
            1,
            comparison_count=40,
            signal_count=10,
            config=scoring_config,
            evidence=evidence,
        )

        assert result.provisional is False

    @pytest.mark.parametrize("field", ["mean", "sigma", "signal_avg", "boost_count"])
    def test_non_finite_rejected(self, field, scoring_config):
        kwargs = {"mean": 1200.0, "sigma": 300.0, "signal_avg": 50.0, "boost_count": 0.0}
        kwargs[field] = float("nan")

        with pytest.raises(ComputationError):
            compute_score(config=scoring_config, **kwargs)


class TestEvidenceNeeded:
    def test_counts_missing_requirements(self, scoring_config):
        evidence = Evidence(comparisons=4, unique_opponents=4, signals=1, unique_signal_raters=1)

        assert evidence_needed(evidence, scoring_config) == {
            "comparisons": 1,
            "unique_opponents": 0,
            "signals": 1,
            "unique_signal_raters": 1,
        }

    def test_nothing_observed(self, scoring_config):
        needed = evidence_needed(Evidence(), scoring_config)

        assert needed == {
            "comparisons": 5,
            "unique_opponents": 3,
            "signals": 2,
            "unique_signal_raters": 2,
        }


class TestScoringConfig:
    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            ScoringConfig(weight_rating=0.5, weight_signal=0.5, weight_boost=0.5)

    def test_floor_below_ceiling(self):
        with pytest.raises(ValueError):
            ScoringConfig(rating_floor=2000, rating_ceiling=800)
