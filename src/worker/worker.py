"""
Batch worker - claims dirty items and replays their pending events.

One run_batch() call walks a small state machine:

    IDLE -> CLAIMING -> PROCESSING -> PUBLISHING -> ... -> IDLE

Every claimed item is handled in isolation. A failing item is requeued
(with backoff) or frozen and never aborts the batch. The wall-clock budget
is checked between items; claims left when it runs out are released
untouched for the next batch.
"""

import socket
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import structlog

from src.errors import ClaimLostError, ComputationError, TransientStoreError
from src.observability.metrics import get_metrics
from src.queues.backoff import ExponentialBackoff
from src.storage.base import RatingStore
from src.storage.schemas import PRIORITY_LOWEST, DirtyEntry, ItemCommit
from src.worker.config import WorkerConfig
from src.worker.processor import ItemProcessor

logger = structlog.get_logger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    CLAIMING = "claiming"
    PROCESSING = "processing"
    PUBLISHING = "publishing"


@dataclass
class BatchResult:
    """Summary of one batch run."""

    worker_id: str
    claimed: int = 0
    processed: int = 0
    published: int = 0
    unchanged: int = 0
    failed: int = 0
    frozen: int = 0
    deferred: int = 0
    lost: int = 0
    events_replayed: int = 0
    errors: list[str] = field(default_factory=list)
    outcome: str = "completed"
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "claimed": self.claimed,
            "processed": self.processed,
            "published": self.published,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "frozen": self.frozen,
            "deferred": self.deferred,
            "lost": self.lost,
            "events_replayed": self.events_replayed,
            "errors": list(self.errors),
            "outcome": self.outcome,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"


class BatchWorker:
    """
    Claims up to batch_size dirty items and replays each one.

    Usage:
        worker = BatchWorker(store)
        result = await worker.run_batch()
    """

    def __init__(
        self,
        store: RatingStore,
        config: WorkerConfig | None = None,
        processor: ItemProcessor | None = None,
        worker_id: str | None = None,
        budget_clock=time.monotonic,
    ):
        """
        Initialize the batch worker.

        Args:
            store: Rating store shared with ingestion
            config: Worker configuration
            processor: Event replay engine (default configs from env)
            worker_id: Claim owner id (default: hostname plus random suffix)
            budget_clock: Monotonic clock used for the batch budget
        """
        self._store = store
        self._config = config or WorkerConfig()
        self._processor = processor or ItemProcessor()
        self._worker_id = worker_id or default_worker_id()
        self._clock = budget_clock
        self._backoff = ExponentialBackoff(
            base_delay=self._config.retry_base_delay,
            max_delay=self._config.retry_max_delay,
        )
        self._state = WorkerState.IDLE

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def state(self) -> WorkerState:
        return self._state

    async def run_batch(self) -> BatchResult:
        """Claim and process one batch. Never raises for per-item failures."""
        metrics = get_metrics()
        result = BatchResult(worker_id=self._worker_id)
        start = self._clock()
        log = logger.bind(worker_id=self._worker_id)

        self._state = WorkerState.CLAIMING
        try:
            claims = await self._store.claim_dirty(
                self._worker_id,
                self._config.batch_size,
                datetime.now(timezone.utc),
                self._config.claim_timeout_seconds,
            )
        except TransientStoreError as e:
            self._state = WorkerState.IDLE
            result.outcome = "claim_failed"
            result.errors.append(f"claim: {e}")
            result.elapsed_seconds = self._clock() - start
            metrics.record_batch(result.outcome, 0, result.elapsed_seconds)
            log.warning("Claim failed, batch skipped", error=str(e))
            return result

        result.claimed = len(claims)
        if not claims:
            self._state = WorkerState.IDLE
            result.outcome = "empty"
            result.elapsed_seconds = self._clock() - start
            metrics.record_batch(result.outcome, 0, result.elapsed_seconds)
            return result

        for index, entry in enumerate(claims):
            if self._clock() - start >= self._config.batch_budget_seconds:
                remaining = claims[index:]
                await self._release(remaining)
                result.deferred = len(remaining)
                result.outcome = "budget_exhausted"
                log.warning(
                    "Batch budget exhausted, releasing remaining claims",
                    deferred=result.deferred,
                    budget_seconds=self._config.batch_budget_seconds,
                )
                break

            self._state = WorkerState.PROCESSING
            await self._process_entry(entry, result)

        self._state = WorkerState.IDLE
        result.elapsed_seconds = self._clock() - start
        metrics.record_batch(result.outcome, result.claimed, result.elapsed_seconds)
        log.info(
            "Batch processed",
            claimed=result.claimed,
            processed=result.processed,
            published=result.published,
            failed=result.failed,
            frozen=result.frozen,
            deferred=result.deferred,
            lost=result.lost,
            elapsed_seconds=round(result.elapsed_seconds, 3),
        )
        return result

    async def _process_entry(self, entry: DirtyEntry, result: BatchResult) -> None:
        metrics = get_metrics()
        item_start = time.perf_counter()
        try:
            published = await self._replay(entry, result)
        except ClaimLostError as e:
            result.lost += 1
            result.errors.append(f"{entry.item_id}: {e}")
            metrics.record_item_outcome("claim_lost")
            logger.warning(
                "Claim lost before commit, result discarded",
                item_id=entry.item_id,
                error=str(e),
            )
        except ComputationError as e:
            result.frozen += 1
            result.errors.append(f"{entry.item_id}: {e}")
            metrics.record_item_outcome("frozen")
            await self._freeze(entry, e)
        except Exception as e:
            result.failed += 1
            result.errors.append(f"{entry.item_id}: {e}")
            metrics.record_item_outcome("failed")
            await self._retry(entry, e)
        else:
            result.processed += 1
            if published:
                result.published += 1
            else:
                result.unchanged += 1
            metrics.record_item_outcome(
                "published" if published else "unchanged",
                time.perf_counter() - item_start,
            )

    async def _replay(self, entry: DirtyEntry, result: BatchResult) -> bool:
        """Replay one claimed item and commit it. Returns True if published."""
        metrics = get_metrics()
        item = await self._store.get_item(entry.item_id)
        if item is None:
            raise ComputationError(f"Dirty item {entry.item_id} has no rating row")

        limit = self._config.max_events_per_item
        events = await self._store.pending_events(entry.item_id, item.last_event_id, limit + 1)
        more_pending = len(events) > limit
        events = events[:limit]

        rater_ids = sorted({e.rater_id for e in events})
        raters = await self._store.get_raters(rater_ids) if rater_ids else {}
        previous = await self._store.get_published(entry.item_id)
        through = max((e.event_id for e in events), default=item.last_event_id)
        evidence = await self._store.evidence_counts(entry.item_id, through)

        now = datetime.now(timezone.utc)
        outcome = self._processor.process(
            item, events, raters, previous, now, evidence=evidence
        )

        self._state = WorkerState.PUBLISHING
        await self._store.commit_item(
            ItemCommit(
                claim=entry,
                item=outcome.item,
                rater_deltas=outcome.rater_deltas,
                published=outcome.published,
                keep_dirty=more_pending,
                checkpoint=item.last_event_id,
            )
        )

        for event_type, count in outcome.replayed.items():
            metrics.record_events_replayed(event_type, count)
            result.events_replayed += count
        if outcome.published is not None:
            metrics.record_publish(outcome.decision.reason.value)

        logger.debug(
            "Item replayed",
            item_id=entry.item_id,
            events=len(events),
            score=round(outcome.score.score, 3),
            confidence=round(outcome.score.confidence, 3),
            decision=outcome.decision.reason.value,
            more_pending=more_pending,
        )
        return outcome.published is not None

    def _not_before(self, attempts: int) -> datetime:
        return self._backoff.retry_after(attempts)

    async def _retry(self, entry: DirtyEntry, error: Exception) -> None:
        not_before = self._not_before(entry.attempts)
        logger.warning(
            "Item processing failed, requeued",
            item_id=entry.item_id,
            error=str(error),
            error_type=type(error).__name__,
            attempts=entry.attempts + 1,
            not_before=not_before.isoformat(),
        )
        try:
            await self._store.requeue(entry, not_before)
        except Exception as e:
            # The claim expires after claim_timeout_seconds
            logger.error("Requeue failed", item_id=entry.item_id, error=str(e))

    async def _freeze(self, entry: DirtyEntry, error: ComputationError) -> None:
        logger.error(
            "Computation error, item frozen",
            item_id=entry.item_id,
            error=str(error),
        )
        get_metrics().record_frozen()
        try:
            await self._store.set_frozen(entry.item_id, True, str(error))
            await self._store.requeue(
                entry, self._not_before(entry.attempts), priority=PRIORITY_LOWEST
            )
        except Exception as e:
            logger.error("Freeze failed", item_id=entry.item_id, error=str(e))

    async def _release(self, entries: list[DirtyEntry]) -> None:
        for entry in entries:
            try:
                await self._store.release_claim(entry)
            except Exception as e:
                logger.error("Release failed", item_id=entry.item_id, error=str(e))
