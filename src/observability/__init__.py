"""Observability layer - structured logging and Prometheus metrics."""

from src.observability.logging import bind_context, clear_context, setup_logging
from src.observability.metrics import MetricsCollector, get_metrics

__all__ = [
    "MetricsCollector",
    "bind_context",
    "clear_context",
    "get_metrics",
    "setup_logging",
]
