"""
Request and response models for the ranking API.
"""

from typing import Literal

from pydantic import BaseModel, Field

from src.storage.schemas import PRIORITY_MAX


# Events


class ComparisonEventRequest(BaseModel):
    """Request model for a pairwise comparison."""

    item_a: str = Field(..., min_length=1, description="First item shown")
    item_b: str = Field(..., min_length=1, description="Second item shown")
    winner_id: str = Field(..., min_length=1, description="Preferred item (item_a or item_b)")
    rater_id: str = Field(..., min_length=1, description="Rater who made the choice")
    high_weight: bool = Field(
        default=False,
        description="Strong preference: doubled K-factor and immediate recompute",
    )


class SignalEventRequest(BaseModel):
    """Request model for a raw signal rating."""

    item_id: str = Field(..., min_length=1)
    rater_id: str = Field(..., min_length=1)
    raw_value: float = Field(..., description="Raw rating on the configured scale (default 0-100)")


class BoostEventRequest(BaseModel):
    """Request model for a tertiary boost."""

    item_id: str = Field(..., min_length=1)
    rater_id: str = Field(..., min_length=1)


class EventAcceptedResponse(BaseModel):
    """Event is durably logged. Scores update in a later batch."""

    accepted: bool = True
    event_id: int
    event_type: str
    priority: int = Field(..., description="Highest dirty priority assigned by this event")
    priorities: dict[str, int] = Field(default_factory=dict)
    triggered: bool = Field(default=False, description="Immediate recompute requested")


# Selection


class SelectionRequest(BaseModel):
    """Request model for next-item selection."""

    eligible_pool: list[str] = Field(
        ...,
        min_length=1,
        max_length=10_000,
        description="Item ids the caller considers eligible",
    )
    mode: Literal["pair", "single"] = "pair"
    priority_weights: dict[str, float] | None = Field(
        default=None,
        description="Optional external priority per item id, each in [0, 1]",
    )


class SelectionResponse(BaseModel):
    mode: str
    item_ids: list[str]
    score: float
    rationale: str
    reasons: list[str] = Field(default_factory=list)
    repeated: bool = False
    latency_ms: float


# Scores


class ScoreBreakdownModel(BaseModel):
    rating: float
    signal: float
    boost: float
    reliability: float


class EvidenceProgressModel(BaseModel):
    """Observations logged for an item and how many more it needs."""

    comparisons: int
    unique_opponents: int
    signals: int
    unique_signal_raters: int
    needed: dict[str, int] = Field(
        default_factory=dict,
        description="Observations still missing before the score stops being provisional",
    )


class ScoreResponse(BaseModel):
    """Published score, or an explicit unscored marker."""

    item_id: str
    status: Literal["scored", "unscored"]
    score: float | None = None
    confidence: float | None = None
    provisional: bool | None = None
    frozen: bool = False
    last_published_at: str | None = None
    breakdown: ScoreBreakdownModel | None = None
    progress: EvidenceProgressModel | None = Field(
        default=None,
        description="Evidence progress for unscored and provisional items",
    )


# Admin


class RegisterItemsRequest(BaseModel):
    item_ids: list[str] = Field(..., min_length=1, max_length=10_000)


class RegisterItemsResponse(BaseModel):
    requested: int
    created: int


class MarkDirtyRequest(BaseModel):
    priority: int = Field(default=PRIORITY_MAX, ge=0, le=PRIORITY_MAX)


class DirtyEntryResponse(BaseModel):
    item_id: str
    priority: int
    version: int
    attempts: int
    enqueued_at: str


class PipelineStatusResponse(BaseModel):
    status: dict = Field(default_factory=dict)
    last_batch: dict | None = None


# Health


class ComponentHealth(BaseModel):
    """Health status of a single infrastructure component."""

    status: str = Field(..., description="healthy, unhealthy or disabled")
    latency_ms: float | None = None
    details: dict = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error type",
    )
