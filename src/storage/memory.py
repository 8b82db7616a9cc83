"""
In-process rating store.

Implements the RatingStore contract with dictionaries guarded by a single
asyncio.Lock, which makes every method atomic with respect to other
coroutines in the same event loop. Used by tests, local development and
the CLI ``--memory`` mode. State does not survive the process.
"""

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from src.calibration.config import CalibrationConfig
from src.calibration.engine import apply_delta
from src.errors import ClaimLostError
from src.storage.base import RatingStore
from src.storage.schemas import (
    DirtyEntry,
    Event,
    EventType,
    Evidence,
    ItemCommit,
    ItemState,
    PipelineStatus,
    PublishedScore,
    RaterState,
)


class InMemoryRatingStore(RatingStore):
    """Dictionary-backed store with the same semantics as PostgresRatingStore."""

    def __init__(self, calibration_config: CalibrationConfig | None = None):
        self._calibration_config = calibration_config or CalibrationConfig()
        self._lock = asyncio.Lock()
        self._items: dict[str, ItemState] = {}
        self._raters: dict[str, RaterState] = {}
        self._events: list[Event] = []
        self._dirty: dict[str, DirtyEntry] = {}
        self._published: dict[str, PublishedScore] = {}
        self._event_ids = itertools.count(1)
        self._decay_watermark: datetime | None = None

    # Items

    async def register_items(
        self,
        item_ids: list[str],
        mean: float,
        sigma: float,
    ) -> int:
        created = 0
        async with self._lock:
            for item_id in item_ids:
                if item_id not in self._items:
                    self._items[item_id] = ItemState(
                        item_id=item_id, mean=mean, sigma=sigma
                    )
                    created += 1
        return created

    async def get_item(self, item_id: str) -> ItemState | None:
        item = self._items.get(item_id)
        return replace(item) if item else None

    async def get_items(self, item_ids: list[str]) -> dict[str, ItemState]:
        return {
            item_id: replace(self._items[item_id])
            for item_id in item_ids
            if item_id in self._items
        }

    async def set_frozen(
        self,
        item_id: str,
        frozen: bool,
        reason: str | None = None,
    ) -> bool:
        async with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return False
            item.frozen = frozen
            item.frozen_reason = reason if frozen else None
            item.updated_at = datetime.now(timezone.utc)
            return True

    async def apply_idle_decay(
        self,
        idle_since: datetime,
        amount: float,
        cap: float,
    ) -> int:
        changed = 0
        async with self._lock:
            for item in self._items.values():
                if item.comparison_count == 0 or item.sigma >= cap:
                    continue
                if item.last_compared_at and item.last_compared_at >= idle_since:
                    continue
                item.sigma = min(cap, item.sigma + amount)
                changed += 1
        return changed

    async def claim_decay_window(
        self,
        now: datetime,
        interval_seconds: float,
    ) -> datetime | None:
        async with self._lock:
            previous = self._decay_watermark
            if previous is None:
                self._decay_watermark = now
                return None
            if (now - previous).total_seconds() < interval_seconds:
                return None
            self._decay_watermark = now
            return previous

    # Events

    async def append_event(
        self,
        event: Event,
        priorities: dict[str, int],
    ) -> Event:
        async with self._lock:
            stored = replace(event, event_id=next(self._event_ids))
            self._events.append(stored)
            for item_id, priority in priorities.items():
                self._mark_dirty_locked(item_id, priority)
            return stored

    async def count_comparisons(self, item_id: str) -> int:
        return sum(
            1
            for e in self._events
            if e.event_type == EventType.COMPARISON and item_id in (e.item_a, e.item_b)
        )

    async def evidence_counts(
        self,
        item_id: str,
        through_event_id: int | None = None,
    ) -> Evidence:
        comparisons = signals = 0
        opponents: set[str] = set()
        signal_raters: set[str] = set()
        for e in self._events:
            if through_event_id is not None and e.event_id > through_event_id:
                continue
            if e.event_type == EventType.COMPARISON and item_id in (e.item_a, e.item_b):
                comparisons += 1
                opponents.add(e.item_b if e.item_a == item_id else e.item_a)
            elif e.event_type == EventType.RAW_SIGNAL and e.item_id == item_id:
                signals += 1
                signal_raters.add(e.rater_id)
        return Evidence(
            comparisons=comparisons,
            unique_opponents=len(opponents),
            signals=signals,
            unique_signal_raters=len(signal_raters),
        )

    async def pending_events(
        self,
        item_id: str,
        after_event_id: int,
        limit: int,
    ) -> list[Event]:
        pending = [
            e
            for e in self._events
            if e.event_id > after_event_id and item_id in e.item_ids
        ]
        return pending[:limit]

    async def recent_events(self, limit: int = 50) -> list[Event]:
        return list(reversed(self._events[-limit:]))

    # Dirty set

    def _mark_dirty_locked(self, item_id: str, priority: int) -> DirtyEntry:
        now = datetime.now(timezone.utc)
        entry = self._dirty.get(item_id)
        if entry is None:
            entry = DirtyEntry(item_id=item_id, priority=priority)
            self._dirty[item_id] = entry
        else:
            entry.priority = max(entry.priority, priority)
            entry.version += 1
            entry.updated_at = now
        return entry

    async def mark_dirty(self, item_id: str, priority: int) -> DirtyEntry:
        async with self._lock:
            return replace(self._mark_dirty_locked(item_id, priority))

    async def claim_dirty(
        self,
        worker_id: str,
        limit: int,
        now: datetime,
        claim_timeout_seconds: float,
    ) -> list[DirtyEntry]:
        stale_before = now - timedelta(seconds=claim_timeout_seconds)
        async with self._lock:
            candidates = [
                entry
                for entry in self._dirty.values()
                if (entry.claimed_by is None or entry.claimed_at < stale_before)
                and (entry.not_before is None or entry.not_before <= now)
            ]
            candidates.sort(key=lambda e: (-e.priority, e.enqueued_at))
            claimed = []
            for entry in candidates[:limit]:
                entry.claimed_by = worker_id
                entry.claimed_at = now
                claimed.append(replace(entry))
            return claimed

    def _owned_entry(self, claim: DirtyEntry) -> DirtyEntry | None:
        entry = self._dirty.get(claim.item_id)
        if entry is None or entry.claimed_by != claim.claimed_by:
            return None
        if claim.claimed_at is not None and entry.claimed_at != claim.claimed_at:
            return None
        return entry

    async def release_claim(self, entry: DirtyEntry) -> None:
        async with self._lock:
            owned = self._owned_entry(entry)
            if owned is not None:
                owned.claimed_by = None
                owned.claimed_at = None

    async def requeue(
        self,
        entry: DirtyEntry,
        not_before: datetime | None,
        priority: int | None = None,
    ) -> None:
        async with self._lock:
            owned = self._owned_entry(entry)
            if owned is None:
                return
            owned.claimed_by = None
            owned.claimed_at = None
            owned.attempts += 1
            owned.not_before = not_before
            if priority is not None:
                owned.priority = priority

    async def commit_item(self, commit: ItemCommit) -> bool:
        item_id = commit.item.item_id
        async with self._lock:
            owned = self._owned_entry(commit.claim)
            if owned is None:
                raise ClaimLostError(
                    f"Claim on {item_id} is no longer held by {commit.claim.claimed_by}",
                    item_id=item_id,
                )
            current = self._items.get(item_id)
            if (
                commit.checkpoint is not None
                and current is not None
                and current.last_event_id != commit.checkpoint
            ):
                raise ClaimLostError(
                    f"Checkpoint of {item_id} moved from {commit.checkpoint} "
                    f"to {current.last_event_id}",
                    item_id=item_id,
                )

            item = replace(commit.item, updated_at=datetime.now(timezone.utc))
            if current is not None:
                item.frozen = current.frozen
                item.frozen_reason = current.frozen_reason
                item.created_at = current.created_at
            self._items[item_id] = item

            for delta in commit.rater_deltas:
                if delta.is_empty:
                    continue
                stored = self._raters.get(delta.rater_id) or RaterState(
                    rater_id=delta.rater_id
                )
                self._raters[delta.rater_id] = apply_delta(
                    stored, delta, self._calibration_config
                )

            if commit.published is not None:
                self._published[item_id] = replace(commit.published)

            if commit.keep_dirty or owned.version != commit.claim.version:
                owned.claimed_by = None
                owned.claimed_at = None
                return False
            del self._dirty[item_id]
            return True

    # Raters

    async def get_raters(self, rater_ids: list[str]) -> dict[str, RaterState]:
        return {
            rater_id: replace(self._raters[rater_id])
            for rater_id in rater_ids
            if rater_id in self._raters
        }

    # Published scores

    async def get_published(self, item_id: str) -> PublishedScore | None:
        published = self._published.get(item_id)
        return replace(published) if published is not None else None

    # Ops

    async def pipeline_status(
        self,
        now: datetime,
        high_priority_threshold: int,
    ) -> PipelineStatus:
        entries = list(self._dirty.values())
        ages = [(now - e.enqueued_at).total_seconds() for e in entries]
        return PipelineStatus(
            dirty_count=len(entries),
            high_priority_count=sum(
                1 for e in entries if e.priority >= high_priority_threshold
            ),
            claimed_count=sum(1 for e in entries if e.claimed_by is not None),
            backoff_count=sum(
                1 for e in entries if e.not_before is not None and e.not_before > now
            ),
            frozen_count=sum(1 for i in self._items.values() if i.frozen),
            oldest_dirty_age_seconds=max(ages) if ages else None,
            avg_dirty_age_seconds=sum(ages) / len(ages) if ages else None,
            total_items=len(self._items),
            total_raters=len(self._raters),
            total_events=len(self._events),
            total_published=len(self._published),
        )

    async def health_check(self) -> bool:
        return True

    def dirty_snapshot(self) -> dict[str, DirtyEntry]:
        """Copy of the dirty set, for inspection in tests and the CLI."""
        return {k: replace(v) for k, v in self._dirty.items()}
