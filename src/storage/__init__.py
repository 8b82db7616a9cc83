"""Storage layer for ratings, raters, events, dirty work and published scores."""

from src.config.settings import get_settings
from src.storage.base import RatingStore
from src.storage.database import Database
from src.storage.memory import InMemoryRatingStore
from src.storage.postgres import PostgresRatingStore
from src.storage.schemas import (
    PRIORITY_LOWEST,
    PRIORITY_MAX,
    DirtyEntry,
    Event,
    EventType,
    Evidence,
    ItemCommit,
    ItemState,
    PipelineStatus,
    PublishedScore,
    RaterDelta,
    RaterState,
)


def create_store(backend: str | None = None) -> RatingStore:
    """Build the configured store backend (not yet connected)."""
    backend = backend or get_settings().store_backend
    if backend == "memory":
        return InMemoryRatingStore()
    return PostgresRatingStore(Database())


__all__ = [
    "PRIORITY_LOWEST",
    "PRIORITY_MAX",
    "Database",
    "DirtyEntry",
    "Event",
    "EventType",
    "Evidence",
    "InMemoryRatingStore",
    "ItemCommit",
    "ItemState",
    "PipelineStatus",
    "PostgresRatingStore",
    "PublishedScore",
    "RaterDelta",
    "RaterState",
    "RatingStore",
    "create_store",
]
