"""
Abstract rating store.

Defines the durable-state contract shared by the PostgreSQL store and the
in-memory store. Ingestion appends events and marks items dirty; the batch
worker claims dirty items, reads their pending events and writes back one
ItemCommit per item; readers only ever see published scores.

All methods are async. Implementations raise TransientStoreError for
contention and timeouts so callers can retry with backoff.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from types import TracebackType

from src.storage.schemas import (
    DirtyEntry,
    Event,
    Evidence,
    ItemCommit,
    ItemState,
    PipelineStatus,
    PublishedScore,
    RaterState,
)


class RatingStore(ABC):
    """Durable state for items, raters, events, dirty entries and scores."""

    async def connect(self) -> None:
        """Open connections. Default is a no-op."""

    async def close(self) -> None:
        """Release connections. Default is a no-op."""

    async def __aenter__(self) -> "RatingStore":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # Items

    @abstractmethod
    async def register_items(
        self,
        item_ids: list[str],
        mean: float,
        sigma: float,
    ) -> int:
        """
        Create rating rows for unknown items. Existing items are untouched.

        Returns:
            Number of newly created items
        """
        ...

    @abstractmethod
    async def get_item(self, item_id: str) -> ItemState | None:
        ...

    @abstractmethod
    async def get_items(self, item_ids: list[str]) -> dict[str, ItemState]:
        """Fetch many items; unknown ids are absent from the result."""
        ...

    @abstractmethod
    async def set_frozen(
        self,
        item_id: str,
        frozen: bool,
        reason: str | None = None,
    ) -> bool:
        """Freeze or unfreeze publishing for an item. False if unknown."""
        ...

    @abstractmethod
    async def apply_idle_decay(
        self,
        idle_since: datetime,
        amount: float,
        cap: float,
    ) -> int:
        """
        Grow sigma for rated items with no comparison since idle_since.

        Returns:
            Number of items whose sigma changed
        """
        ...

    @abstractmethod
    async def claim_decay_window(
        self,
        now: datetime,
        interval_seconds: float,
    ) -> datetime | None:
        """
        Advance the shared idle-decay watermark to now.

        The store serializes callers, so with several schedulers only one
        of them wins each interval. The first call ever records the
        watermark and wins nothing.

        Returns:
            The previous watermark (the idle cutoff to decay against), or
            None if fewer than interval_seconds have passed since it
        """
        ...

    # Events

    @abstractmethod
    async def append_event(
        self,
        event: Event,
        priorities: dict[str, int],
    ) -> Event:
        """
        Append an event and mark every referenced item dirty, atomically.

        Args:
            event: Validated event without an id
            priorities: Dirty priority per referenced item id

        Returns:
            The stored event with event_id assigned
        """
        ...

    @abstractmethod
    async def count_comparisons(self, item_id: str) -> int:
        """Total comparison events ever logged for an item."""
        ...

    @abstractmethod
    async def pending_events(
        self,
        item_id: str,
        after_event_id: int,
        limit: int,
    ) -> list[Event]:
        """Events touching item_id with id above the checkpoint, oldest first."""
        ...

    @abstractmethod
    async def evidence_counts(
        self,
        item_id: str,
        through_event_id: int | None = None,
    ) -> Evidence:
        """
        Count the comparisons and raw signals logged for an item.

        Args:
            item_id: Item to count for
            through_event_id: Ignore events above this id (None = all)
        """
        ...

    @abstractmethod
    async def recent_events(self, limit: int = 50) -> list[Event]:
        """Most recent events, newest first."""
        ...

    # Dirty set

    @abstractmethod
    async def mark_dirty(self, item_id: str, priority: int) -> DirtyEntry:
        """Upsert a dirty entry; priority never decreases."""
        ...

    @abstractmethod
    async def claim_dirty(
        self,
        worker_id: str,
        limit: int,
        now: datetime,
        claim_timeout_seconds: float,
    ) -> list[DirtyEntry]:
        """
        Atomically claim up to limit dirty entries.

        Ordered by priority (desc) then enqueue time (asc). Entries claimed
        by another worker are skipped unless their claim is older than
        claim_timeout_seconds. Entries backing off until after now are
        skipped.
        """
        ...

    @abstractmethod
    async def release_claim(self, entry: DirtyEntry) -> None:
        """Give a claimed entry back untouched (budget exhausted)."""
        ...

    @abstractmethod
    async def requeue(
        self,
        entry: DirtyEntry,
        not_before: datetime | None,
        priority: int | None = None,
    ) -> None:
        """
        Release a failed claim for retry.

        Increments attempts and sets the backoff gate. A priority, when
        given, replaces the stored one (used to demote failing items).
        """
        ...

    @abstractmethod
    async def commit_item(self, commit: ItemCommit) -> bool:
        """
        Write back one replayed item in a single transaction.

        Ownership is checked first: if the claim was reclaimed by another
        worker, or the stored checkpoint no longer matches
        commit.checkpoint, ClaimLostError is raised and nothing is written.
        Otherwise saves the item row, merges rater deltas, upserts the published
        score when present, and deletes the dirty entry unless new events
        arrived during processing (version changed) or keep_dirty is set,
        in which case the claim is released instead.

        Returns:
            True if the dirty entry was removed
        """
        ...

    # Raters

    @abstractmethod
    async def get_raters(self, rater_ids: list[str]) -> dict[str, RaterState]:
        """Fetch raters; unknown ids are absent from the result."""
        ...

    # Published scores

    @abstractmethod
    async def get_published(self, item_id: str) -> PublishedScore | None:
        ...

    # Ops

    @abstractmethod
    async def pipeline_status(
        self,
        now: datetime,
        high_priority_threshold: int,
    ) -> PipelineStatus:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
