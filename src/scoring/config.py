"""Configuration for score aggregation and publish gating.

Provides Pydantic settings for component weights, the rating-to-score range,
confidence curves, provisional thresholds and publish debouncing. All
settings can be overridden via SCORING_* environment variables.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringConfig(BaseSettings):
    """Configuration for the score aggregator and publish gates.

    Example:
        SCORING_WEIGHT_RATING=0.5
        SCORING_SCORE_DELTA_THRESHOLD=1.0
    """

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        case_sensitive=False,
        extra="ignore",
    )

    # Component weights (must sum to 1.0)
    weight_rating: float = Field(default=0.40, ge=0.0, le=1.0)
    weight_signal: float = Field(default=0.30, ge=0.0, le=1.0)
    weight_boost: float = Field(default=0.30, ge=0.0, le=1.0)

    # Rating component
    rating_floor: float = Field(
        default=800.0,
        description="Rating mean mapped to a rating component of 0.",
    )
    rating_ceiling: float = Field(
        default=2000.0,
        description="Rating mean mapped to a rating component of 100.",
    )

    # Signal and boost components
    signal_default: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Signal component used before any raw signal exists.",
    )
    boost_scale: float = Field(
        default=3.0,
        gt=0.0,
        description="Boost count at which the boost component reaches ~63%.",
    )

    # Reliability multiplier bounds
    reliability_min: float = Field(default=0.5, gt=0.0)
    reliability_max: float = Field(default=1.5, gt=0.0)

    # Confidence
    sigma_cap: float = Field(
        default=400.0,
        gt=0.0,
        description="Sigma at which the uncertainty part of confidence is zero.",
    )
    confidence_weight_sigma: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence_weight_votes: float = Field(default=0.3, ge=0.0, le=1.0)
    confidence_weight_signals: float = Field(default=0.2, ge=0.0, le=1.0)
    vote_saturation: float = Field(
        default=10.0,
        gt=0.0,
        description="Comparison count scale for the vote saturation curve.",
    )
    signal_saturation: float = Field(
        default=5.0,
        gt=0.0,
        description="Raw-signal count scale for the signal saturation curve.",
    )

    # Provisional marking
    provisional_min_comparisons: int = Field(default=5, ge=0)
    provisional_min_signals: int = Field(default=2, ge=0)
    provisional_min_unique_opponents: int = Field(
        default=3,
        ge=0,
        description="Distinct opponents an item must have faced.",
    )
    provisional_min_unique_signal_raters: int = Field(
        default=2,
        ge=0,
        description="Distinct raters behind an item's raw signals.",
    )
    provisional_min_confidence: float = Field(default=30.0, ge=0.0, le=100.0)

    # Publish gates
    score_delta_threshold: float = Field(
        default=0.5,
        ge=0.0,
        description="Absolute score change that triggers a republish.",
    )
    confidence_delta_threshold: float = Field(
        default=5.0,
        ge=0.0,
        description="Absolute confidence change that triggers a republish.",
    )
    quality_tiers: list[float] = Field(
        default=[20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0],
        description="Score boundaries whose crossing triggers a republish.",
    )
    confidence_tiers: list[float] = Field(
        default=[20.0, 40.0, 60.0, 80.0],
        description="Confidence boundaries whose crossing triggers a republish.",
    )
    min_republish_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Minimum spacing between republishes of one item (0 = off).",
    )

    @model_validator(mode="after")
    def _check_weights(self) -> "ScoringConfig":
        total = self.weight_rating + self.weight_signal + self.weight_boost
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Component weights must sum to 1.0, got {total}")
        confidence_total = (
            self.confidence_weight_sigma
            + self.confidence_weight_votes
            + self.confidence_weight_signals
        )
        if abs(confidence_total - 1.0) > 1e-6:
            raise ValueError(
                f"Confidence weights must sum to 1.0, got {confidence_total}"
            )
        if self.rating_floor >= self.rating_ceiling:
            raise ValueError("rating_floor must be below rating_ceiling")
        if self.reliability_min > self.reliability_max:
            raise ValueError("reliability_min must not exceed reliability_max")
        return self
