"""
Online rater calibration.

Raw signal values are normalized per rater: a running mean and variance
(Welford) turn each raw value into a clamped z-score mapped onto 0-100, so
a harsh rater's 40 and a generous rater's 80 can mean the same thing.

Reliability is a bounded multiplier nudged toward 1.2 when a rater agrees
with consensus and toward 0.8 when they do not. Contrarian raters count
for less without ever reaching zero weight.
"""

import math
from dataclasses import replace
from datetime import datetime, timezone

from src.calibration.config import CalibrationConfig
from src.calibration.schemas import RaterDelta, RaterState
from src.errors import ComputationError


def welford_step(
    count: int,
    mean: float,
    m2: float,
    value: float,
) -> tuple[int, float, float]:
    """Fold one value into (count, mean, m2)."""
    count += 1
    delta = value - mean
    mean += delta / count
    m2 += delta * (value - mean)
    return count, mean, m2


def merge_stats(
    a: tuple[int, float, float],
    b: tuple[int, float, float],
) -> tuple[int, float, float]:
    """Combine two (count, mean, m2) accumulators (Chan et al.)."""
    count_a, mean_a, m2_a = a
    count_b, mean_b, m2_b = b
    if count_a == 0:
        return b
    if count_b == 0:
        return a
    count = count_a + count_b
    delta = mean_b - mean_a
    mean = mean_a + delta * count_b / count
    m2 = m2_a + m2_b + delta * delta * count_a * count_b / count
    return count, mean, m2


def ingest_raw_signal(stats: RaterState, raw_value: float) -> RaterState:
    """Return new rater stats with raw_value folded in."""
    if not math.isfinite(raw_value):
        raise ComputationError(f"Non-finite raw value {raw_value} for {stats.rater_id}")
    count, mean, m2 = welford_step(stats.count, stats.mean, stats.m2, raw_value)
    return replace(
        stats,
        count=count,
        mean=mean,
        m2=m2,
        updated_at=datetime.now(timezone.utc),
    )


def variance(stats: RaterState, config: CalibrationConfig | None = None) -> float:
    """Variance used for normalization, floored at min_std squared.

    Raters with fewer than two samples fall back to the configured prior.
    """
    config = config or CalibrationConfig()
    if stats.count < 2:
        raw = config.prior_variance
    else:
        raw = stats.sample_variance
    return max(raw, config.min_std**2)


def normalize(
    raw_value: float,
    stats: RaterState,
    config: CalibrationConfig | None = None,
) -> float:
    """Map a raw value to a calibrated 0-100 value using the rater's stats.

    Pure: the same raw value and stats always give the same output.
    """
    config = config or CalibrationConfig()
    mean = stats.mean if stats.count >= 2 else config.prior_mean
    std = max(math.sqrt(variance(stats, config)), config.min_std)

    z = (raw_value - mean) / std
    z = max(-config.z_clamp, min(config.z_clamp, z))

    calibrated = 50.0 + z * (50.0 / config.z_clamp)
    if not math.isfinite(calibrated):
        raise ComputationError(
            f"Normalization produced {calibrated} for rater {stats.rater_id}"
        )
    return max(0.0, min(100.0, calibrated))


def clamp_reliability(value: float, config: CalibrationConfig) -> float:
    return max(config.reliability_min, min(config.reliability_max, value))


def reliability_step(
    aligned: bool,
    weight: float = 1.0,
    config: CalibrationConfig | None = None,
) -> float:
    """Additive reliability change for one aligned/misaligned observation."""
    config = config or CalibrationConfig()
    target = config.aligned_target if aligned else config.misaligned_target
    return config.learning_rate * weight * (target - 1.0)


def update_reliability(
    stats: RaterState,
    aligned: bool,
    weight: float = 1.0,
    config: CalibrationConfig | None = None,
) -> RaterState:
    """Return new rater stats with reliability nudged by one observation."""
    config = config or CalibrationConfig()
    new_reliability = clamp_reliability(
        stats.reliability + reliability_step(aligned, weight, config), config
    )
    return replace(
        stats,
        reliability=new_reliability,
        reliability_samples=stats.reliability_samples + 1,
        updated_at=datetime.now(timezone.utc),
    )


def signal_alignment(
    calibrated_value: float,
    consensus: float,
    config: CalibrationConfig | None = None,
) -> bool:
    """Whether a calibrated value agrees with the item's consensus score."""
    config = config or CalibrationConfig()
    return abs(calibrated_value - consensus) <= config.alignment_tolerance


def comparison_alignment(
    expected_for_choice: float,
    config: CalibrationConfig | None = None,
) -> tuple[bool, float] | None:
    """Alignment of a comparison vote with the pre-match favourite.

    Args:
        expected_for_choice: Pre-match win probability of the item the
            rater picked.

    Returns:
        (aligned, weight), or None when the matchup was too close to call.
    """
    config = config or CalibrationConfig()
    margin = abs(expected_for_choice - 0.5)
    if margin < config.coin_flip_margin:
        return None
    aligned = expected_for_choice > 0.5
    weight = 0.5 + 0.5 * (2.0 * margin)
    return aligned, weight


def apply_delta(
    stats: RaterState,
    delta: RaterDelta,
    config: CalibrationConfig | None = None,
) -> RaterState:
    """Merge a worker's accumulated delta into stored rater stats."""
    config = config or CalibrationConfig()
    count, mean, m2 = merge_stats(
        (stats.count, stats.mean, stats.m2),
        (delta.count, delta.mean, delta.m2),
    )
    return replace(
        stats,
        count=count,
        mean=mean,
        m2=m2,
        reliability=clamp_reliability(
            stats.reliability + delta.reliability_delta, config
        ),
        reliability_samples=stats.reliability_samples + delta.reliability_samples,
        updated_at=datetime.now(timezone.utc),
    )
