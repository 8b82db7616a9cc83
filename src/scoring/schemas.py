"""Schema definitions for aggregated scores and publish decisions."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-component contribution to an aggregated score (each 0-100).

    Attributes:
        rating: Rating mean mapped onto 0-100.
        signal: Calibrated raw-signal average (or the default midpoint).
        boost: Diminishing-returns boost component.
        reliability: Multiplier applied to the weighted sum.
        signal_observed: False when signal is the default midpoint.
    """

    rating: float
    signal: float
    boost: float
    reliability: float
    signal_observed: bool = False

    def to_dict(self) -> dict[str, float | bool]:
        return {
            "rating": round(self.rating, 3),
            "signal": round(self.signal, 3),
            "boost": round(self.boost, 3),
            "reliability": round(self.reliability, 4),
            "signal_observed": self.signal_observed,
        }


@dataclass(frozen=True)
class ScoreResult:
    """Output of the score aggregator."""

    score: float
    confidence: float
    provisional: bool
    breakdown: ScoreBreakdown

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 100.0:
            raise ValueError(f"score must be between 0 and 100, got {self.score}")
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError(
                f"confidence must be between 0 and 100, got {self.confidence}"
            )


class PublishReason(str, Enum):
    """Why a score was (or was not) published."""

    FIRST_PUBLISH = "first_publish"
    SCORE_DELTA = "score_delta"
    CONFIDENCE_DELTA = "confidence_delta"
    QUALITY_TIER = "quality_tier"
    CONFIDENCE_TIER = "confidence_tier"
    BELOW_THRESHOLD = "below_threshold"
    TOO_SOON = "too_soon"
    NO_OBSERVATIONS = "no_observations"
    FROZEN = "frozen"


@dataclass(frozen=True)
class PublishDecision:
    publish: bool
    reason: PublishReason
