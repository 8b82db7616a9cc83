"""Tests for the interval/trigger scheduler."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.ingestion.schemas import BoostRequest
from src.ingestion.service import IngestionService
from src.queues.triggers import TriggerJob
from src.worker.config import WorkerConfig
from src.worker.scheduler import Scheduler


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_runs_a_batch(self, memory_store):
        service = IngestionService(memory_store)
        await service.register_items(["a"])
        await service.ingest(BoostRequest(item_id="a", rater_id="r1"))
        scheduler = Scheduler(memory_store)

        result = await scheduler.run_once()

        assert result.published == 1
        assert scheduler.last_result is result
        status = await scheduler.pipeline_status()
        assert status.dirty_count == 0
        assert status.total_published == 1

    @pytest.mark.asyncio
    async def test_first_tick_sets_decay_baseline(self, memory_store):
        memory_store.apply_idle_decay = AsyncMock(return_value=0)
        scheduler = Scheduler(memory_store)

        await scheduler.run_once()
        await scheduler.run_once()

        memory_store.apply_idle_decay.assert_not_called()

    @pytest.mark.asyncio
    async def test_idle_items_decay_once_per_interval(self, memory_store, rating_config):
        await memory_store.register_items(["a"], 1200.0, 100.0)
        now = datetime.now(timezone.utc)
        memory_store._items["a"].comparison_count = 3
        memory_store._items["a"].last_compared_at = now - timedelta(days=1)
        scheduler = Scheduler(memory_store, config=WorkerConfig(interval_seconds=60))
        memory_store._decay_watermark = now - timedelta(seconds=120)

        await scheduler.run_once()
        await scheduler.run_once()

        item = await memory_store.get_item("a")
        assert item.sigma == pytest.approx(100.0 + rating_config.sigma_decay)


    @pytest.mark.asyncio
    async def test_concurrent_schedulers_decay_once_per_interval(self, memory_store):
        await memory_store.register_items(["a"], 1200.0, 300.0)
        now = datetime.now(timezone.utc)
        memory_store._items["a"].comparison_count = 3
        memory_store._items["a"].last_compared_at = now - timedelta(days=1)
        memory_store._decay_watermark = now - timedelta(seconds=120)
        config = WorkerConfig(interval_seconds=60)
        schedulers = [Scheduler(memory_store, config=config) for _ in range(2)]

        await asyncio.gather(*(s.run_once() for s in schedulers))

        item = await memory_store.get_item("a")
        assert item.sigma == pytest.approx(310.0)
    @pytest.mark.asyncio
    async def test_decay_disabled(self, memory_store):
        memory_store.apply_idle_decay = AsyncMock(return_value=0)
        scheduler = Scheduler(memory_store, config=WorkerConfig(idle_decay_enabled=False))
        memory_store._decay_watermark = datetime.now(timezone.utc) - timedelta(days=1)

        await scheduler.run_once()

        memory_store.apply_idle_decay.assert_not_called()


class TestTriggers:
    @pytest.mark.asyncio
    async def test_trigger_wakes_loop(self, memory_store):
        scheduler = Scheduler(memory_store, config=WorkerConfig(interval_seconds=3600))
        service = IngestionService(memory_store, local_trigger=scheduler.trigger)
        await service.register_items(["a"])
        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0.05)

        await service.ingest(BoostRequest(item_id="a", rater_id="r1"))
        for _ in range(100):
            if await memory_store.get_published("a") is not None:
                break
            await asyncio.sleep(0.01)

        await scheduler.stop()
        await asyncio.wait_for(task, timeout=1.0)
        assert await memory_store.get_published("a") is not None
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_consumes_trigger_stream(self, memory_store):
        async def jobs(count):
            yield TriggerJob(item_id="a", priority=100, message_id="1-0")

        queue = MagicMock()
        queue.consume = jobs
        queue.ack = AsyncMock()
        scheduler = Scheduler(memory_store, trigger_queue=queue)

        await scheduler._consume_triggers()

        queue.ack.assert_awaited_once_with("1-0")
        assert scheduler._wake.is_set()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_without_triggers(self, memory_store):
        health = await Scheduler(memory_store).health_check()

        assert health == {"running": False, "store": True}

    @pytest.mark.asyncio
    async def test_health_with_triggers(self, memory_store):
        queue = MagicMock()
        queue.health_check = AsyncMock(return_value=False)

        health = await Scheduler(memory_store, trigger_queue=queue).health_check()

        assert health["trigger_queue"] is False
