"""
Redis Streams channel for immediate recompute triggers.

Ingestion publishes a TriggerJob when an event carries maximal priority;
schedulers read the stream through one consumer group and run a batch right
away instead of waiting for the next interval tick.

Triggers are hints. The dirty entry is already durable when one is published,
so a lost or duplicated trigger costs at most one scheduling interval or one
empty claim.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass

import redis.asyncio as redis

from src.config.settings import get_settings
from src.queues.backoff import ExponentialBackoff
from src.queues.config import QueueConfig

logger = logging.getLogger(__name__)


@dataclass
class TriggerJob:
    """Request to recompute an item immediately."""

    item_id: str
    priority: int
    message_id: str = ""

    def to_fields(self) -> dict[str, str]:
        return {"item_id": self.item_id, "priority": str(self.priority)}

    @classmethod
    def from_fields(cls, message_id: str, fields: dict[str, str]) -> "TriggerJob":
        """Raises KeyError/ValueError for malformed messages."""
        return cls(
            item_id=fields["item_id"],
            priority=int(fields["priority"]),
            message_id=message_id,
        )


class TriggerQueue:
    """
    Trigger stream shared by API instances (producers) and schedulers
    (consumers).

        queue = TriggerQueue()
        await queue.connect()
        await queue.publish(TriggerJob(item_id="item_42", priority=100))

        async for job in queue.consume():
            ...
            await queue.ack(job.message_id)
    """

    def __init__(
        self,
        redis_url: str | None = None,
        queue_config: QueueConfig | None = None,
    ):
        settings = get_settings()
        self._redis_url = redis_url or str(settings.redis_url)
        self._config = queue_config or QueueConfig()
        self.stream_name = settings.trigger_stream_name
        self.consumer_group = settings.trigger_consumer_group
        self.max_stream_length = settings.trigger_max_stream_length

        self._redis: redis.Redis | None = None
        self._consumer_name = f"scheduler_{uuid.uuid4().hex[:8]}"

    @property
    def client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Trigger queue not connected. Call connect() first.")
        return self._redis

    async def connect(self) -> None:
        """Open the client and create the consumer group if missing."""
        self._redis = redis.from_url(
            self._redis_url, encoding="utf-8", decode_responses=True
        )
        try:
            await self._redis.xgroup_create(
                name=self.stream_name,
                groupname=self.consumer_group,
                id="0",
                mkstream=True,
            )
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        logger.info(
            f"Trigger queue ready: stream={self.stream_name} "
            f"group={self.consumer_group} consumer={self._consumer_name}"
        )

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, job: TriggerJob) -> str:
        message_id = await self.client.xadd(
            name=self.stream_name,
            fields=job.to_fields(),
            maxlen=self.max_stream_length,
            approximate=True,
        )
        return str(message_id)

    async def ack(self, message_id: str) -> None:
        await self.client.xack(self.stream_name, self.consumer_group, message_id)

    async def consume(self, count: int = 10) -> AsyncIterator[TriggerJob]:
        """
        Yield triggers until cancelled.

        Messages left pending by a crashed scheduler are reclaimed before new
        ones are read. Malformed messages are acknowledged and dropped. Redis
        errors are retried with backoff.
        """
        backoff = ExponentialBackoff(
            base_delay=self._config.backoff_base_delay,
            max_delay=self._config.backoff_max_delay,
        )
        while True:
            try:
                batch = await self._reclaim_idle()
                batch += await self._read_new(count)
                backoff.reset()
            except redis.RedisError as e:
                delay = backoff.next_delay()
                logger.error(f"Trigger read failed: {e}; retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue

            for message_id, fields in batch:
                if not fields:
                    # trimmed while pending
                    await self.ack(message_id)
                    continue
                try:
                    job = TriggerJob.from_fields(message_id, fields)
                except (KeyError, ValueError) as e:
                    logger.error(f"Dropping malformed trigger {message_id}: {e}")
                    await self.ack(message_id)
                    continue
                yield job

    async def _read_new(self, count: int) -> list[tuple[str, dict[str, str]]]:
        response = await self.client.xreadgroup(
            groupname=self.consumer_group,
            consumername=self._consumer_name,
            streams={self.stream_name: ">"},
            count=count,
            block=self._config.block_ms,
        )
        return [message for _stream, messages in response or [] for message in messages]

    async def _reclaim_idle(self) -> list[tuple[str, dict[str, str]]]:
        try:
            response = await self.client.xautoclaim(
                name=self.stream_name,
                groupname=self.consumer_group,
                consumername=self._consumer_name,
                min_idle_time=self._config.idle_timeout_ms,
                start_id="0-0",
                count=self._config.reclaim_batch_size,
            )
        except redis.ResponseError as e:
            # XAUTOCLAIM needs Redis 6.2+
            logger.warning(f"Pending trigger reclaim unavailable: {e}")
            return []
        claimed = list(response[1]) if response and len(response) > 1 else []
        if claimed:
            logger.info(f"Reclaimed {len(claimed)} idle triggers")
        return claimed

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (redis.RedisError, RuntimeError) as e:
            logger.warning(f"Trigger queue health check failed: {e}")
            return False
