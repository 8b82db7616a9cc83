"""
Trigger channel and retry helpers.

Classes:
    TriggerQueue: Redis Streams channel for immediate recompute triggers
    ExponentialBackoff: Retry delay calculation with jitter
    CircuitBreaker: Fail-fast guard for best-effort calls
"""

from src.queues.backoff import ExponentialBackoff
from src.queues.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from src.queues.config import QueueConfig
from src.queues.triggers import TriggerJob, TriggerQueue

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ExponentialBackoff",
    "QueueConfig",
    "TriggerJob",
    "TriggerQueue",
]
