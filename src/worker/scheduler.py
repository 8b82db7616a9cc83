"""
Scheduler - runs the batch worker on an interval and on triggers.

Runs as a standalone service that:
1. Applies idle sigma decay once per interval, shared across schedulers
2. Runs a batch every interval_seconds, or right away when woken
3. Consumes the Redis trigger stream so max-priority events from any API
   instance wake it early
4. Publishes dirty-set gauges after each tick
"""

import asyncio
from datetime import datetime, timezone

import structlog

from src.config.settings import get_settings
from src.observability.logging import bind_context
from src.observability.metrics import get_metrics
from src.queues.backoff import ExponentialBackoff
from src.queues.triggers import TriggerQueue
from src.rating.config import RatingConfig
from src.storage.base import RatingStore
from src.storage.schemas import PipelineStatus
from src.worker.config import WorkerConfig
from src.worker.worker import BatchResult, BatchWorker

logger = structlog.get_logger(__name__)


class Scheduler:
    """
    Drives a BatchWorker.

    Usage:
        scheduler = Scheduler(store)
        await scheduler.start()  # Runs until stopped
    """

    def __init__(
        self,
        store: RatingStore,
        worker: BatchWorker | None = None,
        config: WorkerConfig | None = None,
        rating_config: RatingConfig | None = None,
        trigger_queue: TriggerQueue | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            store: Rating store
            worker: Batch worker (or create one from config)
            config: Worker configuration
            rating_config: Source of idle decay amount and sigma cap
            trigger_queue: Redis trigger stream to consume, if any
        """
        self._store = store
        self._config = config or WorkerConfig()
        self._rating_config = rating_config or RatingConfig()
        self._worker = worker or BatchWorker(store, config=self._config)
        self._trigger_queue = trigger_queue

        self._running = False
        self._wake = asyncio.Event()
        self._trigger_task: asyncio.Task | None = None
        self._last_result: BatchResult | None = None
        self._ticks = 0

    @property
    def worker(self) -> BatchWorker:
        return self._worker

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_result(self) -> BatchResult | None:
        return self._last_result

    def trigger(self, item_id: str | None = None, priority: int | None = None) -> None:
        """Wake the scheduler for an immediate batch."""
        logger.debug("Scheduler triggered", item_id=item_id, priority=priority)
        self._wake.set()

    async def start(self) -> None:
        """
        Start the scheduler with a supervised retry loop.

        Reconnects on failures using exponential backoff. Exits after
        worker_max_consecutive_failures or on CancelledError.
        """
        self._running = True
        settings = get_settings()
        bind_context(worker_id=self._worker.worker_id)
        backoff = ExponentialBackoff(
            base_delay=settings.worker_backoff_base_delay,
            max_delay=settings.worker_backoff_max_delay,
        )

        logger.info(
            "Starting scheduler",
            worker_id=self._worker.worker_id,
            interval_seconds=self._config.interval_seconds,
            batch_size=self._config.batch_size,
            triggers=self._trigger_queue is not None,
        )

        while self._running:
            try:
                await self._connect_dependencies()
                await self._run_loop()
                if not self._running:
                    break
            except asyncio.CancelledError:
                logger.info("Scheduler cancelled")
                break
            except Exception as e:
                if backoff.attempt >= settings.worker_max_consecutive_failures:
                    logger.error(
                        "Scheduler exceeded max consecutive failures",
                        failures=backoff.attempt,
                        error=str(e),
                    )
                    raise
                delay = backoff.next_delay()
                logger.warning(
                    "Scheduler error, retrying",
                    error=str(e),
                    attempt=backoff.attempt,
                    retry_delay=round(delay, 1),
                )
                await self._cleanup()
                await asyncio.sleep(delay)
            else:
                backoff.reset()

        await self._cleanup()

    async def stop(self) -> None:
        """Stop after the current item; remaining claims are released by the worker."""
        logger.info("Stopping scheduler")
        self._running = False
        self._wake.set()

    async def _connect_dependencies(self) -> None:
        await self._store.connect()
        if self._trigger_queue is not None:
            await self._trigger_queue.connect()
            self._trigger_task = asyncio.create_task(self._consume_triggers())

    async def _cleanup(self) -> None:
        if self._trigger_task is not None:
            self._trigger_task.cancel()
            try:
                await self._trigger_task
            except asyncio.CancelledError:
                pass
            self._trigger_task = None
        if self._trigger_queue is not None:
            await self._trigger_queue.close()
        await self._store.close()
        logger.info("Scheduler cleaned up")

    async def _run_loop(self) -> None:
        while self._running:
            result = await self.run_once()
            if not self._running:
                break
            if self._config.drain_backlog and result.claimed >= self._config.batch_size:
                continue
            try:
                await asyncio.wait_for(
                    self._wake.wait(), timeout=self._config.interval_seconds
                )
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

    async def _consume_triggers(self) -> None:
        metrics = get_metrics()
        async for job in self._trigger_queue.consume(count=self._config.batch_size):
            metrics.record_trigger("consumed")
            self.trigger(job.item_id, job.priority)
            await self._trigger_queue.ack(job.message_id)

    async def run_once(self) -> BatchResult:
        """
        Run a single tick: idle decay, one batch, gauges.

        Useful for cron-style runs and tests.
        """
        now = datetime.now(timezone.utc)
        self._ticks += 1

        if self._config.idle_decay_enabled:
            await self._decay_idle(now)

        result = await self._worker.run_batch()
        self._last_result = result

        try:
            await self._report_status(now)
        except Exception as e:
            logger.warning("Pipeline status unavailable", error=str(e))
        return result

    async def _decay_idle(self, now: datetime) -> None:
        """Grow sigma for items with no comparison since the previous decay window."""
        try:
            idle_since = await self._store.claim_decay_window(
                now, self._config.interval_seconds
            )
            if idle_since is None:
                return
            changed = await self._store.apply_idle_decay(
                idle_since,
                self._rating_config.sigma_decay,
                self._rating_config.sigma_cap,
            )
        except Exception as e:
            logger.warning("Idle decay failed", error=str(e))
            return

        get_metrics().record_sigma_decay(changed)
        if changed:
            logger.info(
                "Idle sigma decay applied",
                items=changed,
                idle_since=idle_since.isoformat(),
            )

    async def _report_status(self, now: datetime) -> PipelineStatus:
        status = await self._store.pipeline_status(
            now, self._config.high_priority_threshold
        )
        get_metrics().set_pipeline_status(
            status.dirty_count,
            status.high_priority_count,
            status.oldest_dirty_age_seconds,
        )
        return status

    async def pipeline_status(self) -> PipelineStatus:
        return await self._report_status(datetime.now(timezone.utc))

    async def health_check(self) -> dict[str, bool]:
        """Check the store and, when configured, the trigger stream."""
        health = {
            "running": self._running,
            "store": await self._store.health_check(),
        }
        if self._trigger_queue is not None:
            health["trigger_queue"] = await self._trigger_queue.health_check()
        return health
