"""Tests for rater calibration: Welford stats, normalization and reliability."""

import itertools
import random

import pytest

from src.calibration.config import CalibrationConfig
from src.calibration.engine import (
    apply_delta,
    comparison_alignment,
    ingest_raw_signal,
    merge_stats,
    normalize,
    reliability_step,
    signal_alignment,
    update_reliability,
    variance,
    welford_step,
)
from src.calibration.schemas import RaterDelta, RaterState
from src.errors import ComputationError


def _rater_with(values: list[float], rater_id: str = "r1") -> RaterState:
    stats = RaterState(rater_id=rater_id)
    for value in values:
        stats = ingest_raw_signal(stats, value)
    return stats


class TestWelford:
    """Running mean and variance."""

    def test_forty_fifty_sixty(self, calibration_config):
        stats = _rater_with([40, 50, 60])

        assert stats.count == 3
        assert stats.mean == pytest.approx(50.0)
        assert stats.sample_variance == pytest.approx(100.0)
        assert variance(stats, calibration_config) == pytest.approx(100.0)

    def test_order_does_not_matter(self):
        values = [12.0, 77.5, 40.0, 99.0, 3.25]
        results = [_rater_with(list(p)) for p in itertools.permutations(values)]

        for stats in results:
            assert stats.mean == pytest.approx(results[0].mean)
            assert stats.m2 == pytest.approx(results[0].m2)

    def test_single_step(self):
        assert welford_step(0, 0.0, 0.0, 42.0) == (1, 42.0, 0.0)

    def test_merge_matches_sequential(self):
        rng = random.Random(3)
        left = [rng.uniform(0, 100) for _ in range(17)]
        right = [rng.uniform(0, 100) for _ in range(9)]

        sequential = _rater_with(left + right)
        a, b = _rater_with(left), _rater_with(right)
        count, mean, m2 = merge_stats((a.count, a.mean, a.m2), (b.count, b.mean, b.m2))

        assert count == sequential.count
        assert mean == pytest.approx(sequential.mean)
        assert m2 == pytest.approx(sequential.m2)

    def test_merge_with_empty(self):
        assert merge_stats((0, 0.0, 0.0), (3, 50.0, 200.0)) == (3, 50.0, 200.0)
        assert merge_stats((3, 50.0, 200.0), (0, 0.0, 0.0)) == (3, 50.0, 200.0)

    def test_non_finite_raw_rejected(self):
        with pytest.raises(ComputationError):
            ingest_raw_signal(RaterState(rater_id="r1"), float("nan"))

    def test_ingest_returns_new_state(self):
        stats = RaterState(rater_id="r1")
        updated = ingest_raw_signal(stats, 10.0)

        assert stats.count == 0
        assert updated.count == 1


class TestVariance:
    def test_prior_below_two_samples(self, calibration_config):
        assert variance(RaterState(rater_id="r1"), calibration_config) == 225.0
        assert variance(_rater_with([80]), calibration_config) == 225.0

    def test_floored_at_min_std(self, calibration_config):
        stats = _rater_with([50, 50, 50, 50])
        assert variance(stats, calibration_config) == pytest.approx(
            calibration_config.min_std**2
        )


class TestNormalize:
    """Raw value to calibrated 0-100."""

    def test_one_std_above_mean(self, calibration_config):
        stats = _rater_with([40, 50, 60])
        assert normalize(60, stats, calibration_config) == pytest.approx(70.0)

    def test_mean_maps_to_midpoint(self, calibration_config):
        stats = _rater_with([40, 50, 60])
        assert normalize(50, stats, calibration_config) == pytest.approx(50.0)

    def test_uses_prior_for_new_rater(self, calibration_config):
        stats = RaterState(rater_id="new")
        # prior mean 50, prior std 15
        assert normalize(65, stats, calibration_config) == pytest.approx(70.0)

    def test_clamped_to_range(self, calibration_config):
        stats = _rater_with([40, 50, 60])
        assert normalize(1000, stats, calibration_config) == 100.0
        assert normalize(-1000, stats, calibration_config) == 0.0

    def test_pure(self, calibration_config):
        stats = _rater_with([10, 20, 35, 80])
        first = normalize(42.0, stats, calibration_config)

        assert normalize(42.0, stats, calibration_config) == first
        assert stats.count == 4

    def test_harsh_and_generous_raters_agree(self, calibration_config):
        harsh = _rater_with([20, 30, 40], rater_id="harsh")
        generous = _rater_with([60, 70, 80], rater_id="generous")

        assert normalize(40, harsh, calibration_config) == pytest.approx(
            normalize(80, generous, calibration_config)
        )

    def test_output_always_in_range(self, calibration_config):
        rng = random.Random(11)
        for _ in range(200):
            stats = _rater_with([rng.uniform(0, 100) for _ in range(rng.randint(0, 6))])
            value = normalize(rng.uniform(-50, 150), stats, calibration_config)
            assert 0.0 <= value <= 100.0


class TestReliability:
    """Bounded reliability multiplier."""

    def test_step_sizes(self, calibration_config):
        assert reliability_step(True, 1.0, calibration_config) == pytest.approx(0.02)
        assert reliability_step(False, 1.0, calibration_config) == pytest.approx(-0.02)
        assert reliability_step(True, 0.5, calibration_config) == pytest.approx(0.01)

    def test_lower_bound(self, calibration_config):
        stats = RaterState(rater_id="contrarian")
        for _ in range(500):
            stats = update_reliability(stats, False, 1.0, calibration_config)

        assert stats.reliability == pytest.approx(calibration_config.reliability_min)
        assert stats.reliability_samples == 500

    def test_upper_bound(self, calibration_config):
        stats = RaterState(rater_id="consistent")
        for _ in range(500):
            stats = update_reliability(stats, True, 1.0, calibration_config)

        assert stats.reliability == pytest.approx(calibration_config.reliability_max)

    def test_signal_alignment_tolerance(self, calibration_config):
        assert signal_alignment(70.0, 55.0, calibration_config) is True
        assert signal_alignment(90.0, 55.0, calibration_config) is False

    def test_contrarian_signal_lowers_reliability(self, calibration_config):
        stats = RaterState(rater_id="r1")

        aligned = signal_alignment(95.0, 40.0, calibration_config)
        stats = update_reliability(stats, aligned, 1.0, calibration_config)

        assert stats.reliability == pytest.approx(0.98)
        assert stats.reliability_samples == 1

    def test_coin_flip_comparison_ignored(self, calibration_config):
        assert comparison_alignment(0.52, calibration_config) is None

    def test_comparison_with_favourite(self, calibration_config):
        aligned, weight = comparison_alignment(0.8, calibration_config)
        assert aligned is True
        assert weight == pytest.approx(0.8)

    def test_comparison_against_favourite(self, calibration_config):
        aligned, weight = comparison_alignment(0.2, calibration_config)
        assert aligned is False
        assert weight == pytest.approx(0.8)


class TestApplyDelta:
    """Merging a worker's delta into stored rater state."""

    def test_merges_stats_and_reliability(self, calibration_config):
        stored = _rater_with([40, 50])
        extra = _rater_with([60])
        delta = RaterDelta(
            rater_id="r1",
            count=extra.count,
            mean=extra.mean,
            m2=extra.m2,
            reliability_delta=0.04,
            reliability_samples=2,
        )

        merged = apply_delta(stored, delta, calibration_config)

        assert merged.count == 3
        assert merged.mean == pytest.approx(50.0)
        assert merged.sample_variance == pytest.approx(100.0)
        assert merged.reliability == pytest.approx(1.04)
        assert merged.reliability_samples == 2

    def test_reliability_clamped(self, calibration_config):
        stored = RaterState(rater_id="r1", reliability=1.49)
        delta = RaterDelta(rater_id="r1", reliability_delta=0.5, reliability_samples=10)

        merged = apply_delta(stored, delta, calibration_config)

        assert merged.reliability == calibration_config.reliability_max

    def test_empty_delta(self):
        assert RaterDelta(rater_id="r1").is_empty
        assert not RaterDelta(rater_id="r1", count=1, mean=3.0).is_empty
