"""Score aggregation and publish gating.

Usage:
    from src.scoring import compute_score, should_publish

    result = compute_score(mean=1320.0, sigma=180.0, signal_avg=64.0, boost_count=2)
    decision = should_publish(previous, result, now)
"""

from src.scoring.aggregator import (
    boost_component,
    compute_confidence,
    compute_score,
    evidence_needed,
    rating_component,
)
from src.scoring.config import ScoringConfig
from src.scoring.gates import should_publish, tier_index
from src.scoring.schemas import (
    PublishDecision,
    PublishReason,
    ScoreBreakdown,
    ScoreResult,
)

__all__ = [
    "PublishDecision",
    "PublishReason",
    "ScoreBreakdown",
    "ScoreResult",
    "ScoringConfig",
    "boost_component",
    "compute_confidence",
    "compute_score",
    "evidence_needed",
    "rating_component",
    "should_publish",
    "tier_index",
]
