"""Schema definitions for selection inputs and results."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SelectionCandidate:
    """An eligible item as seen by the selection engine.

    Attributes:
        item_id: Catalog identifier.
        mean: Current rating mean.
        comparison_count: Comparisons replayed so far.
        signal_count: Raw signals replayed so far.
        priority_weight: Optional external priority in [0, 1].
    """

    item_id: str
    mean: float = 1200.0
    comparison_count: int = 0
    signal_count: int = 0
    priority_weight: float = 0.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.priority_weight <= 1.0:
            raise ValueError(
                f"priority_weight must be between 0 and 1, got {self.priority_weight}"
            )


@dataclass
class PairSelection:
    item_a: str
    item_b: str
    score: float
    rationale: str
    repeated: bool = False
    reasons: list[str] = field(default_factory=list)

    @property
    def pair_key(self) -> tuple[str, str]:
        return pair_key(self.item_a, self.item_b)


@dataclass
class SingleSelection:
    item_id: str
    score: float
    rationale: str
    reasons: list[str] = field(default_factory=list)


def pair_key(a: str, b: str) -> tuple[str, str]:
    """Order-independent key for a pair of item ids."""
    return (a, b) if a <= b else (b, a)
