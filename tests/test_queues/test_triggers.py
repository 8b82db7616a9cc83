"""Tests for the Redis trigger stream."""

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from src.queues.config import QueueConfig
from src.queues.triggers import TriggerJob, TriggerQueue


@pytest.fixture
def queue(test_settings, monkeypatch) -> TriggerQueue:
    monkeypatch.setattr("src.queues.triggers.get_settings", lambda: test_settings)
    return TriggerQueue(queue_config=QueueConfig(block_ms=10))


def _connected(queue: TriggerQueue) -> AsyncMock:
    client = AsyncMock()
    queue._redis = client
    return client


class TestTriggerJob:
    def test_fields_round_trip(self):
        fields = TriggerJob(item_id="item_1", priority=100).to_fields()

        assert fields == {"item_id": "item_1", "priority": "100"}
        job = TriggerJob.from_fields("5-0", fields)
        assert job == TriggerJob(item_id="item_1", priority=100, message_id="5-0")

    def test_missing_field_rejected(self):
        with pytest.raises(KeyError):
            TriggerJob.from_fields("5-0", {"priority": "100"})

    def test_bad_priority_rejected(self):
        with pytest.raises(ValueError):
            TriggerJob.from_fields("5-0", {"item_id": "a", "priority": "high"})


class TestTriggerQueue:
    def test_stream_from_settings(self, queue, test_settings):
        assert queue.stream_name == test_settings.trigger_stream_name
        assert queue.consumer_group == test_settings.trigger_consumer_group
        assert queue.max_stream_length == test_settings.trigger_max_stream_length

    @pytest.mark.asyncio
    async def test_publish(self, queue):
        client = _connected(queue)
        client.xadd.return_value = "7-0"

        message_id = await queue.publish(TriggerJob(item_id="a", priority=100))

        assert message_id == "7-0"
        kwargs = client.xadd.call_args.kwargs
        assert kwargs["fields"] == {"item_id": "a", "priority": "100"}
        assert kwargs["approximate"] is True

    @pytest.mark.asyncio
    async def test_publish_requires_connection(self, queue):
        with pytest.raises(RuntimeError):
            await queue.publish(TriggerJob(item_id="a", priority=100))

    @pytest.mark.asyncio
    async def test_consume_skips_unparseable_messages(self, queue):
        client = _connected(queue)
        client.xautoclaim.return_value = ["0-0", [], []]
        client.xreadgroup.return_value = [
            [
                "ranking_triggers",
                [("1-0", {"bogus": "x"}), ("2-0", {"item_id": "b", "priority": "100"})],
            ]
        ]

        consumer = queue.consume(count=5)
        job = await consumer.__anext__()
        await consumer.aclose()

        assert job.item_id == "b"
        assert job.message_id == "2-0"
        client.xack.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_check(self, queue):
        assert await queue.health_check() is False

        client = _connected(queue)
        assert await queue.health_check() is True

        client.ping.side_effect = redis.ConnectionError("gone")
        assert await queue.health_check() is False

    @pytest.mark.asyncio
    async def test_consume_acks_trimmed_reclaimed_messages(self, queue):
        client = _connected(queue)
        client.xautoclaim.return_value = [
            "0-0",
            [("3-0", None), ("4-0", {"item_id": "c", "priority": "100"})],
            [],
        ]
        client.xreadgroup.return_value = []

        consumer = queue.consume()
        job = await consumer.__anext__()
        await consumer.aclose()

        assert job.item_id == "c"
        client.xack.assert_awaited_once_with(
            queue.stream_name, queue.consumer_group, "3-0"
        )
