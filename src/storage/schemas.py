"""Schema definitions for the rating store.

Five logical relations: ``events`` (append-only log), ``dirty_items`` (work
queue keyed by item), ``item_ratings``, ``rater_calibration`` and
``published_scores``. Dataclasses map 1:1 to those tables, plus the
``ItemCommit`` unit of work a worker writes back after replaying one item.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from src.calibration.schemas import RaterDelta, RaterState

PRIORITY_LOWEST = 0
PRIORITY_MAX = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """Kinds of observation recorded in the event log."""

    COMPARISON = "comparison"
    RAW_SIGNAL = "raw_signal"
    BOOST = "boost"


@dataclass
class ItemState:
    """Rating state for one item from the item_ratings table.

    Attributes:
        item_id: Catalog identifier of the item.
        mean: Elo rating mean.
        sigma: Rating uncertainty.
        comparison_count: Comparisons replayed into this rating.
        signal_sum: Reliability-weighted sum of calibrated signal values.
        signal_weight: Sum of reliability weights behind signal_sum.
        signal_count: Raw-signal events replayed.
        boost_count: Boost events replayed.
        boost_weight: Reliability-weighted boost total.
        reliability_sum: Sum of contributing rater reliabilities.
        reliability_samples: Number of contributions in reliability_sum.
        last_event_id: Replay checkpoint; events above this id are pending.
        last_compared_at: Time of the last replayed comparison.
        frozen: Publishing suspended after a computation error.
        frozen_reason: Error message that caused the freeze.
    """

    item_id: str
    mean: float = 1200.0
    sigma: float = 350.0
    comparison_count: int = 0
    signal_sum: float = 0.0
    signal_weight: float = 0.0
    signal_count: int = 0
    boost_count: int = 0
    boost_weight: float = 0.0
    reliability_sum: float = 0.0
    reliability_samples: int = 0
    last_event_id: int = 0
    last_compared_at: datetime | None = None
    frozen: bool = False
    frozen_reason: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.item_id:
            raise ValueError("item_id must not be empty")
        if self.comparison_count < 0 or self.signal_count < 0 or self.boost_count < 0:
            raise ValueError("Observation counts must be non-negative")

    @property
    def signal_avg(self) -> float | None:
        """Reliability-weighted calibrated signal average, None without signals."""
        if self.signal_weight <= 0:
            return None
        return self.signal_sum / self.signal_weight

    @property
    def avg_reliability(self) -> float:
        """Average reliability of contributing raters (1.0 with none)."""
        if self.reliability_samples == 0:
            return 1.0
        return self.reliability_sum / self.reliability_samples

    @property
    def has_observations(self) -> bool:
        return (self.comparison_count + self.signal_count + self.boost_count) > 0

    def is_finite(self) -> bool:
        """Check that every numeric field holds a finite value."""
        return all(
            math.isfinite(v)
            for v in (
                self.mean,
                self.sigma,
                self.signal_sum,
                self.signal_weight,
                self.boost_weight,
                self.reliability_sum,
            )
        )


@dataclass
class Event:
    """An immutable observation from the events table.

    Comparisons carry the pre-match rating snapshot of both items so each
    side can be replayed without reading the opponent's current state.
    """

    event_type: EventType
    rater_id: str
    event_id: int | None = None
    item_a: str | None = None
    item_b: str | None = None
    winner_id: str | None = None
    high_weight: bool = False
    pre_mean_a: float | None = None
    pre_sigma_a: float | None = None
    pre_mean_b: float | None = None
    pre_sigma_b: float | None = None
    item_id: str | None = None
    raw_value: float | None = None
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if isinstance(self.event_type, str):
            self.event_type = EventType(self.event_type)
        if not self.rater_id:
            raise ValueError("rater_id must not be empty")

        if self.event_type == EventType.COMPARISON:
            if not self.item_a or not self.item_b:
                raise ValueError("Comparison requires item_a and item_b")
            if self.item_a == self.item_b:
                raise ValueError("Comparison items must differ")
            if self.winner_id not in (self.item_a, self.item_b):
                raise ValueError(
                    f"winner_id {self.winner_id!r} is not one of the compared items"
                )
        elif not self.item_id:
            raise ValueError(f"{self.event_type.value} event requires item_id")
        elif self.event_type == EventType.RAW_SIGNAL and self.raw_value is None:
            raise ValueError("raw_signal event requires raw_value")

    @property
    def item_ids(self) -> list[str]:
        """Items this event touches."""
        if self.event_type == EventType.COMPARISON:
            return [self.item_a, self.item_b]
        return [self.item_id]


@dataclass
class DirtyEntry:
    """Work-queue record from the dirty_items table.

    version increases on every mark so a worker can tell whether new events
    arrived while it held the claim.
    """

    item_id: str
    priority: int = PRIORITY_LOWEST
    enqueued_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    version: int = 1
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    attempts: int = 0
    not_before: datetime | None = None


@dataclass
class PublishedScore:
    """Externally visible score from the published_scores table."""

    item_id: str
    score: float
    confidence: float
    provisional: bool = True
    rating_component: float = 0.0
    signal_component: float = 0.0
    boost_component: float = 0.0
    reliability: float = 1.0
    published_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 100.0:
            raise ValueError(f"score must be between 0 and 100, got {self.score}")
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError(
                f"confidence must be between 0 and 100, got {self.confidence}"
            )


@dataclass(frozen=True)
class Evidence:
    """Observations behind an item's score, counted from the event log."""

    comparisons: int = 0
    unique_opponents: int = 0
    signals: int = 0
    unique_signal_raters: int = 0


@dataclass
class ItemCommit:
    """Everything a worker writes back after replaying one claimed item."""

    claim: DirtyEntry
    item: ItemState
    rater_deltas: list[RaterDelta] = field(default_factory=list)
    published: PublishedScore | None = None
    keep_dirty: bool = False
    checkpoint: int | None = None  # last_event_id the replay started from


@dataclass
class PipelineStatus:
    """Snapshot of the dirty-set backlog and store totals."""

    dirty_count: int = 0
    high_priority_count: int = 0
    claimed_count: int = 0
    backoff_count: int = 0
    frozen_count: int = 0
    oldest_dirty_age_seconds: float | None = None
    avg_dirty_age_seconds: float | None = None
    total_items: int = 0
    total_raters: int = 0
    total_events: int = 0
    total_published: int = 0

    def to_dict(self) -> dict[str, float | int | None]:
        return {
            "dirty_count": self.dirty_count,
            "high_priority_count": self.high_priority_count,
            "claimed_count": self.claimed_count,
            "backoff_count": self.backoff_count,
            "frozen_count": self.frozen_count,
            "oldest_dirty_age_seconds": self.oldest_dirty_age_seconds,
            "avg_dirty_age_seconds": self.avg_dirty_age_seconds,
            "total_items": self.total_items,
            "total_raters": self.total_raters,
            "total_events": self.total_events,
            "total_published": self.total_published,
        }
