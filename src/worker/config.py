"""
Batch worker and scheduler configuration.

All settings can be overridden via environment variables prefixed with
WORKER_.

Example:
    WORKER_BATCH_SIZE=100
    WORKER_INTERVAL_SECONDS=30
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.storage.schemas import PRIORITY_MAX


class WorkerConfig(BaseSettings):
    """Configuration for claiming and replaying dirty items."""

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Batching
    batch_size: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Dirty entries claimed per batch",
    )
    batch_budget_seconds: float = Field(
        default=45.0,
        gt=0.0,
        description="Wall-clock budget per batch; unprocessed claims are released",
    )
    claim_timeout_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Claims older than this are considered abandoned and reclaimable",
    )
    max_events_per_item: int = Field(
        default=1000,
        ge=1,
        description="Events replayed per item per batch; the rest wait for the next one",
    )

    # Scheduling
    interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between scheduled batches",
    )
    drain_backlog: bool = Field(
        default=True,
        description="Run the next batch immediately when a batch came back full",
    )
    idle_decay_enabled: bool = Field(
        default=True,
        description="Grow sigma of items with no comparisons since the previous tick",
    )

    # Per-item retry
    retry_base_delay: float = Field(default=5.0, gt=0.0)
    retry_max_delay: float = Field(default=300.0, gt=0.0)

    high_priority_threshold: int = Field(
        default=PRIORITY_MAX,
        ge=0,
        le=PRIORITY_MAX,
        description="Dirty entries at or above this priority count as high priority",
    )

    @model_validator(mode="after")
    def _check_budget(self) -> "WorkerConfig":
        if self.batch_budget_seconds >= self.claim_timeout_seconds:
            raise ValueError("batch_budget_seconds must be below claim_timeout_seconds")
        return self
