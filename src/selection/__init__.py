"""Information-gain selection of the next pair or single item."""

from src.selection.config import SelectionConfig
from src.selection.engine import SelectionEngine, uncertainty
from src.selection.recent_pairs import RecentPairs
from src.selection.schemas import (
    PairSelection,
    SelectionCandidate,
    SingleSelection,
    pair_key,
)
from src.selection.service import SelectionMode, SelectionService

__all__ = [
    "PairSelection",
    "RecentPairs",
    "SelectionCandidate",
    "SelectionConfig",
    "SelectionEngine",
    "SelectionMode",
    "SelectionService",
    "SingleSelection",
    "pair_key",
    "uncertainty",
]
