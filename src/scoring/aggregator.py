"""
Score aggregation.

Combines three weak signals into one bounded 0-100 quality score:

    rating   Elo mean mapped linearly from [rating_floor, rating_ceiling]
    signal   reliability-weighted calibrated raw-signal average (0-100)
    boost    100 * (1 - exp(-boosts / boost_scale)), diminishing returns

The weighted sum is multiplied by the average reliability of contributing
raters and clamped to [0, 100]. Confidence blends rating uncertainty with
saturation curves over comparison and signal counts.
"""

import math

from src.errors import ComputationError
from src.scoring.config import ScoringConfig
from src.scoring.schemas import ScoreBreakdown, ScoreResult
from src.storage.schemas import Evidence


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def rating_component(mean: float, config: ScoringConfig) -> float:
    """Map a rating mean onto 0-100, clamped at both ends."""
    span = config.rating_ceiling - config.rating_floor
    return _clamp((mean - config.rating_floor) / span * 100.0, 0.0, 100.0)


def boost_component(boost_count: float, config: ScoringConfig) -> float:
    """Diminishing-returns boost component."""
    if boost_count <= 0:
        return 0.0
    return _clamp(100.0 * (1.0 - math.exp(-boost_count / config.boost_scale)), 0.0, 100.0)


def compute_confidence(
    sigma: float,
    comparison_count: int,
    signal_count: int,
    config: ScoringConfig,
) -> float:
    """Confidence in [0, 100].

    Non-decreasing in comparison_count and signal_count, non-increasing in
    sigma.
    """
    sigma_conf = _clamp(1.0 - sigma / config.sigma_cap, 0.0, 1.0)
    vote_sat = 1.0 - math.exp(-max(comparison_count, 0) / config.vote_saturation)
    signal_sat = 1.0 - math.exp(-max(signal_count, 0) / config.signal_saturation)

    confidence = 100.0 * (
        config.confidence_weight_sigma * sigma_conf
        + config.confidence_weight_votes * vote_sat
        + config.confidence_weight_signals * signal_sat
    )
    return _clamp(confidence, 0.0, 100.0)


def evidence_needed(evidence: Evidence, config: ScoringConfig) -> dict[str, int]:
    """Observations still missing before a score can stop being provisional."""
    return {
        "comparisons": max(0, config.provisional_min_comparisons - evidence.comparisons),
        "unique_opponents": max(
            0, config.provisional_min_unique_opponents - evidence.unique_opponents
        ),
        "signals": max(0, config.provisional_min_signals - evidence.signals),
        "unique_signal_raters": max(
            0, config.provisional_min_unique_signal_raters - evidence.unique_signal_raters
        ),
    }


def compute_score(
    mean: float,
    sigma: float,
    signal_avg: float | None,
    boost_count: float,
    avg_reliability: float = 1.0,
    comparison_count: int = 0,
    signal_count: int = 0,
    config: ScoringConfig | None = None,
    evidence: Evidence | None = None,
) -> ScoreResult:
    """Aggregate rating, calibrated signal and boost into one score.

    Args:
        mean: Rating mean.
        sigma: Rating uncertainty.
        signal_avg: Calibrated signal average, or None if no signal yet.
        boost_count: Reliability-weighted boost total.
        avg_reliability: Average reliability of contributing raters.
        comparison_count: Comparisons behind the rating (for confidence).
        signal_count: Raw signals behind signal_avg (for confidence).
        config: Scoring configuration (defaults from environment).
        evidence: Distinct opponents and signal raters from the event log.
            When given, missing evidence keeps the score provisional.

    Returns:
        ScoreResult with score, confidence, provisional flag and breakdown.

    Raises:
        ComputationError: If any numeric input is NaN or infinite.
    """
    config = config or ScoringConfig()

    numeric = {
        "mean": mean,
        "sigma": sigma,
        "boost_count": boost_count,
        "avg_reliability": avg_reliability,
    }
    if signal_avg is not None:
        numeric["signal_avg"] = signal_avg
    for name, value in numeric.items():
        if not math.isfinite(value):
            raise ComputationError(f"Non-finite score input {name}={value}")

    rating = rating_component(mean, config)
    if signal_avg is None:
        signal = config.signal_default
    else:
        signal = _clamp(signal_avg, 0.0, 100.0)
    boost = boost_component(boost_count, config)
    reliability = _clamp(avg_reliability, config.reliability_min, config.reliability_max)

    weighted = (
        config.weight_rating * rating
        + config.weight_signal * signal
        + config.weight_boost * boost
    )
    score = _clamp(weighted * reliability, 0.0, 100.0)
    confidence = compute_confidence(sigma, comparison_count, signal_count, config)

    provisional = (
        comparison_count < config.provisional_min_comparisons
        or signal_count < config.provisional_min_signals
        or confidence < config.provisional_min_confidence
    )
    if evidence is not None and any(evidence_needed(evidence, config).values()):
        provisional = True

    return ScoreResult(
        score=score,
        confidence=confidence,
        provisional=provisional,
        breakdown=ScoreBreakdown(
            rating=rating,
            signal=signal,
            boost=boost,
            reliability=reliability,
            signal_observed=signal_avg is not None,
        ),
    )
