"""
Event ingestion and dirty-set tracking.

Validates an inbound event, appends it to the immutable log and marks
every referenced item dirty with a priority, all in one store call. Never
waits on score computation: an accepted event is durable, not yet scored.

Max-priority events (boosts, high-weight comparisons) also publish an
immediate trigger so the scheduler does not wait for its next tick.
"""

import time
from collections.abc import Callable

import structlog

from src.errors import ValidationError
from src.ingestion.config import IngestionConfig
from src.ingestion.schemas import (
    BoostRequest,
    ComparisonRequest,
    IngestAck,
    IngestRequest,
    SignalRequest,
)
from src.observability.metrics import get_metrics
from src.queues.circuit_breaker import CircuitBreaker, CircuitOpenError
from src.queues.triggers import TriggerJob, TriggerQueue
from src.rating.config import RatingConfig
from src.storage.base import RatingStore
from src.storage.schemas import PRIORITY_MAX, DirtyEntry, Event, EventType

logger = structlog.get_logger(__name__)

LocalTrigger = Callable[[str, int], None]


class IngestionService:
    """
    Accepts comparison, raw-signal and boost events.

    Usage:
        service = IngestionService(store)
        ack = await service.submit_comparison(
            ComparisonRequest(item_a="a", item_b="b", winner_id="a", rater_id="r1")
        )
    """

    def __init__(
        self,
        store: RatingStore,
        config: IngestionConfig | None = None,
        rating_config: RatingConfig | None = None,
        trigger_queue: TriggerQueue | None = None,
        local_trigger: LocalTrigger | None = None,
    ):
        """
        Initialize the ingestion service.

        Args:
            store: Rating store for the event log and dirty set
            config: Ingestion configuration
            rating_config: Rating priors used when registering items
            trigger_queue: Redis trigger stream for cross-process wake-ups
            local_trigger: In-process wake-up callback (item_id, priority)
        """
        self._store = store
        self._config = config or IngestionConfig()
        self._rating_config = rating_config or RatingConfig()
        self._trigger_queue = trigger_queue
        self._local_trigger = local_trigger
        self._breaker = CircuitBreaker(
            failure_threshold=self._config.trigger_failure_threshold,
            recovery_timeout=self._config.trigger_recovery_seconds,
            name="trigger_queue",
        )

    # Priorities

    def milestone_priority(self, comparison_count: int) -> int:
        """Dirty priority for an item reaching comparison_count comparisons."""
        if comparison_count not in self._config.milestones:
            return 0
        if comparison_count >= self._config.high_milestone_from:
            return self._config.high_milestone_priority
        return self._config.milestone_priority

    async def _comparison_priorities(self, request: ComparisonRequest) -> dict[str, int]:
        if request.high_weight:
            return {request.item_a: PRIORITY_MAX, request.item_b: PRIORITY_MAX}
        priorities = {}
        for item_id in (request.item_a, request.item_b):
            count = await self._store.count_comparisons(item_id) + 1
            priorities[item_id] = self.milestone_priority(count)
        return priorities

    # Validation

    def _check_id_length(self, *values: str) -> None:
        for value in values:
            if len(value) > self._config.max_id_length:
                raise ValidationError(
                    f"Identifier longer than {self._config.max_id_length} characters"
                )

    def _check_raw_range(self, raw_value: float) -> None:
        if not self._config.raw_min <= raw_value <= self._config.raw_max:
            raise ValidationError(
                f"raw_value {raw_value} outside "
                f"[{self._config.raw_min}, {self._config.raw_max}]",
                field="raw_value",
            )

    async def _require_items(self, item_ids: list[str]) -> dict:
        items = await self._store.get_items(item_ids)
        missing = [item_id for item_id in item_ids if item_id not in items]
        if missing:
            raise ValidationError(f"Unknown item(s): {', '.join(missing)}", field="item_id")
        return items

    # Submission

    async def submit_comparison(self, request: ComparisonRequest) -> IngestAck:
        """
        Log a pairwise comparison.

        The event stores both items' current ratings so each side can be
        replayed independently by the batch worker.

        Raises:
            ValidationError: If either item is unknown.
        """
        self._check_id_length(request.item_a, request.item_b, request.rater_id)
        items = await self._require_items([request.item_a, request.item_b])
        a, b = items[request.item_a], items[request.item_b]

        event = Event(
            event_type=EventType.COMPARISON,
            rater_id=request.rater_id,
            item_a=request.item_a,
            item_b=request.item_b,
            winner_id=request.winner_id,
            high_weight=request.high_weight,
            pre_mean_a=a.mean,
            pre_sigma_a=a.sigma,
            pre_mean_b=b.mean,
            pre_sigma_b=b.sigma,
        )
        priorities = await self._comparison_priorities(request)
        return await self._append(event, priorities)

    async def submit_signal(self, request: SignalRequest) -> IngestAck:
        """
        Log a raw signal rating.

        Raises:
            ValidationError: If the item is unknown or the value is out of range.
        """
        self._check_id_length(request.item_id, request.rater_id)
        self._check_raw_range(request.raw_value)
        await self._require_items([request.item_id])

        event = Event(
            event_type=EventType.RAW_SIGNAL,
            rater_id=request.rater_id,
            item_id=request.item_id,
            raw_value=float(request.raw_value),
        )
        return await self._append(event, {request.item_id: self._config.signal_priority})

    async def submit_boost(self, request: BoostRequest) -> IngestAck:
        """
        Log a tertiary boost.

        Raises:
            ValidationError: If the item is unknown.
        """
        self._check_id_length(request.item_id, request.rater_id)
        await self._require_items([request.item_id])

        event = Event(
            event_type=EventType.BOOST,
            rater_id=request.rater_id,
            item_id=request.item_id,
        )
        return await self._append(event, {request.item_id: PRIORITY_MAX})

    async def ingest(self, request: IngestRequest) -> IngestAck:
        """Dispatch any supported request type, recording metrics."""
        metrics = get_metrics()
        event_type = request.event_type.value
        start = time.perf_counter()
        try:
            if isinstance(request, ComparisonRequest):
                ack = await self.submit_comparison(request)
            elif isinstance(request, SignalRequest):
                ack = await self.submit_signal(request)
            elif isinstance(request, BoostRequest):
                ack = await self.submit_boost(request)
            else:
                raise ValidationError(f"Unsupported request type {type(request).__name__}")
        except ValidationError as e:
            metrics.record_ingestion(event_type, "rejected")
            logger.info("Event rejected", event_type=event_type, error=str(e))
            raise
        except Exception:
            metrics.record_ingestion(event_type, "error")
            raise

        metrics.record_ingestion(event_type, "accepted", time.perf_counter() - start)
        return ack

    async def _append(self, event: Event, priorities: dict[str, int]) -> IngestAck:
        stored = await self._store.append_event(event, priorities)
        triggered = False
        for item_id, priority in priorities.items():
            if priority >= PRIORITY_MAX:
                triggered = await self._trigger(item_id, priority) or triggered

        logger.debug(
            "Event ingested",
            event_id=stored.event_id,
            event_type=event.event_type.value,
            priorities=priorities,
            triggered=triggered,
        )
        return IngestAck(
            event_id=stored.event_id,
            event_type=event.event_type,
            priorities=priorities,
            triggered=triggered,
        )

    async def _trigger(self, item_id: str, priority: int) -> bool:
        """Request immediate processing. Failures never fail ingestion."""
        metrics = get_metrics()
        triggered = False

        if self._local_trigger is not None:
            self._local_trigger(item_id, priority)
            triggered = True

        if self._trigger_queue is not None:
            try:
                await self._breaker.call(
                    self._trigger_queue.publish, TriggerJob(item_id=item_id, priority=priority)
                )
                metrics.record_trigger("published")
                triggered = True
            except CircuitOpenError:
                metrics.record_trigger("publish_failed")
            except Exception as e:
                metrics.record_trigger("publish_failed")
                logger.warning(
                    "Trigger publish failed, item waits for next tick",
                    item_id=item_id,
                    error=str(e),
                )
        return triggered

    # Admin

    async def register_items(self, item_ids: list[str]) -> int:
        """Make items known to the engine with default ratings."""
        ids = list(dict.fromkeys(i for i in item_ids if i and i.strip()))
        if not ids:
            raise ValidationError("No item ids supplied", field="item_ids")
        self._check_id_length(*ids)
        created = await self._store.register_items(
            ids, self._rating_config.default_mean, self._rating_config.default_sigma
        )
        logger.info("Items registered", requested=len(ids), created=created)
        return created

    async def mark_dirty(self, item_id: str, priority: int) -> DirtyEntry:
        """Manual recompute override."""
        if not 0 <= priority <= PRIORITY_MAX:
            raise ValidationError(
                f"priority must be between 0 and {PRIORITY_MAX}", field="priority"
            )
        await self._require_items([item_id])
        entry = await self._store.mark_dirty(item_id, priority)
        if priority >= PRIORITY_MAX:
            await self._trigger(item_id, priority)
        logger.info("Item marked dirty", item_id=item_id, priority=entry.priority)
        return entry

    async def unfreeze(self, item_id: str, priority: int = PRIORITY_MAX) -> DirtyEntry:
        """Clear a computation-error freeze and schedule a recompute."""
        if not await self._store.set_frozen(item_id, False):
            raise ValidationError(f"Unknown item(s): {item_id}", field="item_id")
        logger.info("Item unfrozen", item_id=item_id)
        return await self.mark_dirty(item_id, priority)
