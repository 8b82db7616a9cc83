"""Configuration for event ingestion and dirty-set priorities.

All settings can be overridden via ``INGESTION_*`` environment variables.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionConfig(BaseSettings):
    """Configuration for event validation and dirty priorities."""

    model_config = SettingsConfigDict(
        env_prefix="INGESTION_",
        case_sensitive=False,
        extra="ignore",
    )

    # Raw signal range (values outside are rejected, never clamped)
    raw_min: float = Field(default=0.0, description="Lowest accepted raw signal value.")
    raw_max: float = Field(default=100.0, description="Highest accepted raw signal value.")

    # Dirty priorities
    signal_priority: int = Field(default=5, ge=0)
    milestone_priority: int = Field(default=10, ge=0)
    high_milestone_priority: int = Field(default=20, ge=0)
    milestones: list[int] = Field(
        default=[5, 10, 25, 50, 100],
        description="Comparison counts at which an item is recomputed sooner.",
    )
    high_milestone_from: int = Field(
        default=25,
        ge=1,
        description="Milestones at or above this use high_milestone_priority.",
    )

    # Trigger circuit breaker
    trigger_failure_threshold: int = Field(default=5, ge=1)
    trigger_recovery_seconds: float = Field(default=30.0, gt=0.0)

    max_id_length: int = Field(default=128, ge=1)

    @model_validator(mode="after")
    def _check_range(self) -> "IngestionConfig":
        if self.raw_min >= self.raw_max:
            raise ValueError("raw_min must be below raw_max")
        return self
