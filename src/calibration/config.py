"""Configuration for rater calibration.

Controls the normalization prior, z-score clamp and reliability learning.
All settings can be overridden via ``CALIBRATION_*`` environment variables.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CalibrationConfig(BaseSettings):
    """Configuration for per-rater normalization and reliability."""

    model_config = SettingsConfigDict(
        env_prefix="CALIBRATION_",
        case_sensitive=False,
        extra="ignore",
    )

    # Normalization
    prior_mean: float = Field(
        default=50.0,
        description="Mean assumed for a rater with fewer than two samples.",
    )
    prior_variance: float = Field(
        default=225.0,
        gt=0.0,
        description="Variance assumed for a rater with fewer than two samples.",
    )
    min_std: float = Field(
        default=5.0,
        gt=0.0,
        description="Standard deviation floor used when normalizing.",
    )
    z_clamp: float = Field(
        default=2.5,
        gt=0.0,
        description="Absolute z-score bound before mapping to 0-100.",
    )

    # Reliability
    learning_rate: float = Field(
        default=0.10,
        gt=0.0,
        le=1.0,
        description="Step size for reliability adjustments.",
    )
    aligned_target: float = Field(
        default=1.2,
        description="Reliability target pulled toward on an aligned observation.",
    )
    misaligned_target: float = Field(
        default=0.8,
        description="Reliability target pulled toward on a misaligned observation.",
    )
    reliability_min: float = Field(default=0.5, gt=0.0)
    reliability_max: float = Field(default=1.5, gt=0.0)
    alignment_tolerance: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        description="Max calibrated-vs-consensus gap (points) still counted as aligned.",
    )
    coin_flip_margin: float = Field(
        default=0.05,
        ge=0.0,
        le=0.5,
        description="Comparisons with |expected - 0.5| below this teach nothing about a rater.",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "CalibrationConfig":
        if self.reliability_min > self.reliability_max:
            raise ValueError("reliability_min must not exceed reliability_max")
        return self
