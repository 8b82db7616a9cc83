"""Schema definitions for rater calibration.

``RaterState`` maps 1:1 to the ``rater_calibration`` table. ``RaterDelta``
is the change one worker accumulates for a rater while replaying a single
item; it is merged into the stored row under a row lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class RaterState:
    """Calibration statistics for one rater.

    count/mean/m2 are Welford accumulators over the rater's raw signal values.
    """

    rater_id: str
    count: int = 0
    mean: float = 0.0
    m2: float = 0.0
    reliability: float = 1.0
    reliability_samples: int = 0
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if not self.rater_id:
            raise ValueError("rater_id must not be empty")
        if self.count < 0:
            raise ValueError(f"count must be non-negative, got {self.count}")

    @property
    def sample_variance(self) -> float:
        """Unfloored sample variance (n-1 convention)."""
        return self.m2 / max(self.count - 1, 1)


@dataclass
class RaterDelta:
    """Changes to one rater accumulated while replaying a single item."""

    rater_id: str
    count: int = 0
    mean: float = 0.0
    m2: float = 0.0
    reliability_delta: float = 0.0
    reliability_samples: int = 0

    @property
    def is_empty(self) -> bool:
        return self.count == 0 and self.reliability_samples == 0
