"""Schema definitions for inbound events and ingestion acknowledgements.

Requests validate their own shape; checks that need the store (unknown
items) and the configured raw range are done by IngestionService.
"""

import math
from dataclasses import dataclass, field

from src.errors import ValidationError
from src.storage.schemas import EventType


def _require_id(value: str, name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string", field=name)


@dataclass(frozen=True)
class ComparisonRequest:
    """A rater preferred winner_id over the other item of the pair."""

    item_a: str
    item_b: str
    winner_id: str
    rater_id: str
    high_weight: bool = False

    def __post_init__(self) -> None:
        _require_id(self.item_a, "item_a")
        _require_id(self.item_b, "item_b")
        _require_id(self.rater_id, "rater_id")
        if self.item_a == self.item_b:
            raise ValidationError("item_a and item_b must differ", field="item_b")
        if self.winner_id not in (self.item_a, self.item_b):
            raise ValidationError(
                f"winner_id {self.winner_id!r} is not one of the compared items",
                field="winner_id",
            )

    @property
    def event_type(self) -> EventType:
        return EventType.COMPARISON


@dataclass(frozen=True)
class SignalRequest:
    """A rater's raw score for one item."""

    item_id: str
    rater_id: str
    raw_value: float

    def __post_init__(self) -> None:
        _require_id(self.item_id, "item_id")
        _require_id(self.rater_id, "rater_id")
        if isinstance(self.raw_value, bool) or not isinstance(self.raw_value, (int, float)):
            raise ValidationError("raw_value must be a number", field="raw_value")
        if not math.isfinite(self.raw_value):
            raise ValidationError("raw_value must be finite", field="raw_value")

    @property
    def event_type(self) -> EventType:
        return EventType.RAW_SIGNAL


@dataclass(frozen=True)
class BoostRequest:
    """A rater's tertiary boost for one item."""

    item_id: str
    rater_id: str

    def __post_init__(self) -> None:
        _require_id(self.item_id, "item_id")
        _require_id(self.rater_id, "rater_id")

    @property
    def event_type(self) -> EventType:
        return EventType.BOOST


IngestRequest = ComparisonRequest | SignalRequest | BoostRequest


@dataclass
class IngestAck:
    """Acknowledgement that an event is durably logged.

    Does not imply scores are updated; that happens in the next batch.
    """

    event_id: int
    event_type: EventType
    priorities: dict[str, int] = field(default_factory=dict)
    triggered: bool = False

    @property
    def max_priority(self) -> int:
        return max(self.priorities.values(), default=0)
