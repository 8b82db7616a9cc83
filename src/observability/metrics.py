"""
Prometheus metrics for the ranking pipeline.

Defines and exposes metrics for:
- Event ingestion rates and rejections
- Dirty-set backlog
- Batch and per-item processing outcomes
- Score publishes by gate reason
- Selection requests and anti-repeat fallbacks
- API requests cut off by the request timeout

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
BATCH_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 45.0, 90.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the taste-engine pipeline.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_ingestion("comparison", "accepted", latency=0.004)
        metrics.record_item_outcome("published", latency=0.02)
    """

    def __init__(self):

        # Ingestion
        self.events_ingested = Counter(
            "taste_engine_events_ingested_total",
            "Events submitted to ingestion",
            ["event_type", "status"],  # status: accepted, rejected, error
        )
        self.ingest_latency = Histogram(
            "taste_engine_ingest_latency_seconds",
            "Time to validate, append and mark dirty",
            ["event_type"],
            buckets=LATENCY_BUCKETS,
        )

        # Dirty set
        self.dirty_queue_depth = Gauge(
            "taste_engine_dirty_queue_depth",
            "Items waiting for recomputation",
        )
        self.dirty_high_priority = Gauge(
            "taste_engine_dirty_high_priority",
            "Dirty items at or above the high-priority threshold",
        )
        self.dirty_oldest_age = Gauge(
            "taste_engine_dirty_oldest_age_seconds",
            "Age of the oldest dirty entry",
        )

        # Batch worker
        self.batches = Counter(
            "taste_engine_batches_total",
            "Batch worker runs",
            ["outcome"],  # outcome: completed, budget_exhausted, empty, claim_failed
        )
        self.batch_latency = Histogram(
            "taste_engine_batch_latency_seconds",
            "Wall-clock time per batch",
            buckets=BATCH_BUCKETS,
        )
        self.items_claimed = Counter(
            "taste_engine_items_claimed_total",
            "Dirty entries claimed by workers",
        )
        self.items_processed = Counter(
            "taste_engine_items_processed_total",
            "Claimed items by processing outcome",
            ["outcome"],  # published, unchanged, failed, frozen, claim_lost
        )
        self.item_latency = Histogram(
            "taste_engine_item_latency_seconds",
            "Replay-and-commit time per item",
            buckets=LATENCY_BUCKETS,
        )
        self.events_replayed = Counter(
            "taste_engine_events_replayed_total",
            "Events replayed into item state",
            ["event_type"],
        )
        self.sigma_decayed = Counter(
            "taste_engine_sigma_decayed_total",
            "Idle items whose sigma grew on a scheduler tick",
        )

        # Publishing
        self.scores_published = Counter(
            "taste_engine_scores_published_total",
            "Published score updates",
            ["reason"],
        )
        self.items_frozen = Counter(
            "taste_engine_items_frozen_total",
            "Items frozen after a computation error",
        )

        # Selection
        self.selection_requests = Counter(
            "taste_engine_selection_requests_total",
            "Selection requests",
            ["mode", "outcome"],  # outcome: selected, repeated, starved
        )
        self.selection_latency = Histogram(
            "taste_engine_selection_latency_seconds",
            "Time to score and choose a selection",
            ["mode"],
            buckets=LATENCY_BUCKETS,
        )

        # Triggers
        self.triggers = Counter(
            "taste_engine_triggers_total",
            "Immediate recompute triggers",
            ["action"],  # published, publish_failed, consumed
        )

        # API
        self.request_timeouts = Counter(
            "taste_engine_request_timeouts_total",
            "HTTP requests cut off by the request timeout",
            ["method"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """Serve /metrics on its own port (METRICS_PORT unless given)."""
        port = port or get_settings().metrics_port
        start_http_server(port, registry=REGISTRY)
        logger.info(f"Serving Prometheus metrics on :{port}")

    # Recording helpers used by services and workers

    def record_ingestion(
        self,
        event_type: str,
        status: str,
        latency: float | None = None,
    ) -> None:
        self.events_ingested.labels(event_type=event_type, status=status).inc()
        if latency is not None and latency > 0:
            self.ingest_latency.labels(event_type=event_type).observe(latency)

    def record_item_outcome(self, outcome: str, latency: float | None = None) -> None:
        self.items_processed.labels(outcome=outcome).inc()
        if latency is not None and latency > 0:
            self.item_latency.observe(latency)

    def record_events_replayed(self, event_type: str, count: int = 1) -> None:
        if count > 0:
            self.events_replayed.labels(event_type=event_type).inc(count)

    def record_batch(self, outcome: str, claimed: int, latency: float) -> None:
        """
        Record a batch run.

        Args:
            outcome: completed, budget_exhausted, empty or claim_failed
            claimed: Entries claimed in this batch
            latency: Batch wall-clock seconds
        """
        self.batches.labels(outcome=outcome).inc()
        if claimed > 0:
            self.items_claimed.inc(claimed)
        if latency > 0:
            self.batch_latency.observe(latency)

    def record_publish(self, reason: str) -> None:
        self.scores_published.labels(reason=reason).inc()

    def record_frozen(self) -> None:
        self.items_frozen.inc()

    def record_sigma_decay(self, count: int) -> None:
        if count > 0:
            self.sigma_decayed.inc(count)

    def set_pipeline_status(
        self,
        dirty_count: int,
        high_priority_count: int,
        oldest_age_seconds: float | None,
    ) -> None:
        self.dirty_queue_depth.set(dirty_count)
        self.dirty_high_priority.set(high_priority_count)
        self.dirty_oldest_age.set(oldest_age_seconds or 0.0)

    def record_selection(
        self,
        mode: str,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        self.selection_requests.labels(mode=mode, outcome=outcome).inc()
        if latency is not None and latency > 0:
            self.selection_latency.labels(mode=mode).observe(latency)

    def record_trigger(self, action: str) -> None:
        self.triggers.labels(action=action).inc()

    def record_request_timeout(self, method: str) -> None:
        self.request_timeouts.labels(method=method).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Process-wide collector; metrics register on first use."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
