"""Configuration for pair and single-item selection.

All settings can be overridden via ``SELECTION_*`` environment variables.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SelectionConfig(BaseSettings):
    """Configuration for information-gain selection."""

    model_config = SettingsConfigDict(
        env_prefix="SELECTION_",
        case_sensitive=False,
        extra="ignore",
    )

    # Uncertainty heuristic: max(floor, 100 * decay ** comparisons)
    uncertainty_floor: float = Field(default=25.0, ge=0.0, le=100.0)
    uncertainty_decay: float = Field(default=0.95, gt=0.0, lt=1.0)

    # Pair score weights
    weight_uncertainty: float = Field(default=0.4, ge=0.0)
    weight_proximity: float = Field(default=0.3, ge=0.0)
    weight_deficit: float = Field(default=0.2, ge=0.0)
    weight_priority: float = Field(default=0.1, ge=0.0)
    proximity_spread: float = Field(
        default=400.0,
        gt=0.0,
        description="Rating gap at which proximity reaches zero.",
    )

    # Choice among the best candidates
    top_k: int = Field(default=5, ge=1, le=50)
    rank_decay: float = Field(
        default=0.7,
        gt=0.0,
        le=1.0,
        description="Weight multiplier per rank among the top-k candidates.",
    )

    # Anti-repeat
    recent_pairs_size: int = Field(
        default=1500,
        ge=1,
        description="Recent unordered pairs remembered per process.",
    )
    max_scan: int = Field(
        default=200,
        ge=1,
        description=(
            "Ranked pairs the shortlist is drawn from. When all of them are recent "
            "the rest of the ranking is searched; a repeat needs every pair recent."
        ),
    )

    # Bounds
    max_pool_size: int = Field(
        default=200,
        ge=2,
        description="Most-uncertain items kept from an oversized pool.",
    )
    single_signal_target: int = Field(
        default=10,
        ge=1,
        description="Raw-signal count at which an item no longer needs signals.",
    )

    seed: int | None = Field(
        default=None,
        description="Random seed for reproducible selection (tests, replays).",
    )

    @model_validator(mode="after")
    def _check_weights(self) -> "SelectionConfig":
        total = (
            self.weight_uncertainty
            + self.weight_proximity
            + self.weight_deficit
            + self.weight_priority
        )
        if total <= 0:
            raise ValueError("At least one pair score weight must be positive")
        return self
