"""
Queue configuration for the Redis Streams trigger channel.

Triggers are idempotent wake-up hints (the dirty_items table is the source
of truth), so reclaimed messages are simply re-delivered and acknowledged.
"""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    Configuration for stream consumption.

    Attributes:
        idle_timeout_ms: Time after which an unacknowledged message may be
            reclaimed by another consumer.
        reclaim_batch_size: Messages reclaimed per XAUTOCLAIM call.
        block_ms: How long XREADGROUP blocks waiting for new messages.
    """

    idle_timeout_ms: int = 30_000
    reclaim_batch_size: int = 10
    block_ms: int = 2_000

    # Backoff settings for consume() error recovery
    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 30.0
