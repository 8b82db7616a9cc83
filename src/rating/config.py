"""Configuration for the pairwise rating engine.

Controls Elo K-factors, uncertainty (sigma) bounds and shrink/decay rates.
All settings can be overridden via ``RATING_*`` environment variables.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RatingConfig(BaseSettings):
    """Configuration for Elo-with-uncertainty updates."""

    model_config = SettingsConfigDict(
        env_prefix="RATING_",
        case_sensitive=False,
        extra="ignore",
    )

    # Priors for newly registered items
    default_mean: float = Field(
        default=1200.0,
        description="Rating mean assigned to a new item.",
    )
    default_sigma: float = Field(
        default=350.0,
        gt=0.0,
        description="Rating uncertainty assigned to a new item.",
    )

    # K-factors
    base_k: float = Field(
        default=32.0,
        gt=0.0,
        description="Rating delta scale for a normal comparison.",
    )
    high_weight_k: float = Field(
        default=64.0,
        gt=0.0,
        description="Rating delta scale for a high-weight comparison.",
    )
    logistic_scale: float = Field(
        default=400.0,
        gt=0.0,
        description="Rating difference giving 10:1 expected odds.",
    )

    # Uncertainty bounds
    sigma_floor: float = Field(
        default=50.0,
        gt=0.0,
        description="Minimum sigma after any update.",
    )
    sigma_cap: float = Field(
        default=400.0,
        gt=0.0,
        description="Maximum sigma, including idle growth.",
    )
    sigma_shrink: float = Field(
        default=0.98,
        gt=0.0,
        le=1.0,
        description="Multiplicative sigma shrink applied after every match.",
    )
    sigma_decay: float = Field(
        default=10.0,
        ge=0.0,
        description="Additive sigma growth per decay interval with no comparisons.",
    )

    # Mean clamp
    mean_min: float = Field(default=0.0, description="Lower clamp for rating mean.")
    mean_max: float = Field(default=3000.0, description="Upper clamp for rating mean.")

    @model_validator(mode="after")
    def _check_bounds(self) -> "RatingConfig":
        if self.sigma_floor > self.sigma_cap:
            raise ValueError("sigma_floor must not exceed sigma_cap")
        if self.mean_min >= self.mean_max:
            raise ValueError("mean_min must be below mean_max")
        return self
