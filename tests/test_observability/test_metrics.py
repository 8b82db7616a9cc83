"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from src.observability.metrics import get_metrics


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_ingestion(self):
        before = _sample(
            "taste_engine_events_ingested_total", event_type="boost", status="accepted"
        )

        get_metrics().record_ingestion("boost", "accepted", latency=0.002)

        after = _sample(
            "taste_engine_events_ingested_total", event_type="boost", status="accepted"
        )
        assert after == before + 1

    def test_record_batch_counts_claims(self):
        before = _sample("taste_engine_items_claimed_total")

        get_metrics().record_batch("completed", claimed=7, latency=0.5)

        assert _sample("taste_engine_items_claimed_total") == before + 7

    def test_empty_replays_not_counted(self):
        before = _sample("taste_engine_events_replayed_total", event_type="comparison")

        get_metrics().record_events_replayed("comparison", 0)

        assert _sample("taste_engine_events_replayed_total", event_type="comparison") == before

    def test_pipeline_gauges(self):
        get_metrics().set_pipeline_status(12, 3, None)

        assert _sample("taste_engine_dirty_queue_depth") == 12
        assert _sample("taste_engine_dirty_high_priority") == 3
        assert _sample("taste_engine_dirty_oldest_age_seconds") == 0.0
