"""Tests for per-item event replay."""

from datetime import datetime, timezone

import pytest

from src.errors import ComputationError
from src.scoring.schemas import PublishReason
from src.storage.schemas import Event, EventType, Evidence, ItemState, PublishedScore
from src.worker.processor import ItemProcessor

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _comparison(event_id, winner="a", mean_a=1200.0, mean_b=1200.0, high_weight=False):
    return Event(
        event_type=EventType.COMPARISON,
        rater_id="r1",
        event_id=event_id,
        item_a="a",
        item_b="b",
        winner_id=winner,
        high_weight=high_weight,
        pre_mean_a=mean_a,
        pre_sigma_a=350.0,
        pre_mean_b=mean_b,
        pre_sigma_b=350.0,
        created_at=NOW,
    )


def _signal(event_id, raw, rater="r1", item="a"):
    return Event(
        event_type=EventType.RAW_SIGNAL,
        rater_id=rater,
        event_id=event_id,
        item_id=item,
        raw_value=raw,
    )


def _boost(event_id, rater="r1", item="a"):
    return Event(event_type=EventType.BOOST, rater_id=rater, event_id=event_id, item_id=item)


@pytest.fixture
def processor(rating_config, calibration_config, scoring_config) -> ItemProcessor:
    return ItemProcessor(rating_config, calibration_config, scoring_config)


class TestComparisonReplay:
    def test_both_sides_replayed_independently(self, processor):
        event = _comparison(1)

        a = processor.process(ItemState(item_id="a"), [event], {}, None, NOW)
        b = processor.process(ItemState(item_id="b"), [event], {}, None, NOW)

        assert a.item.mean == pytest.approx(1216.0)
        assert b.item.mean == pytest.approx(1184.0)
        assert a.item.comparison_count == b.item.comparison_count == 1
        assert a.item.sigma < 350.0
        assert a.item.last_compared_at == NOW

    def test_high_weight_doubles_change(self, processor):
        outcome = processor.process(
            ItemState(item_id="a"), [_comparison(1, high_weight=True)], {}, None, NOW
        )

        assert outcome.item.mean == pytest.approx(1232.0)

    def test_input_item_not_modified(self, processor):
        item = ItemState(item_id="a")

        processor.process(item, [_comparison(1)], {}, None, NOW)

        assert item.mean == 1200.0
        assert item.last_event_id == 0

    def test_already_replayed_events_skipped(self, processor):
        first = processor.process(ItemState(item_id="a"), [_comparison(1)], {}, None, NOW)

        again = processor.process(first.item, [_comparison(1)], {}, None, NOW)

        assert again.item.mean == first.item.mean
        assert again.item.comparison_count == 1
        assert sum(again.replayed.values()) == 0

    def test_events_replayed_in_id_order(self, processor):
        events = [_comparison(2, winner="b"), _comparison(1)]

        outcome = processor.process(ItemState(item_id="a"), events, {}, None, NOW)

        assert outcome.item.last_event_id == 2
        assert outcome.replayed["comparison"] == 2

    def test_missing_opponent_snapshot(self, processor):
        event = Event(
            event_type=EventType.COMPARISON,
            rater_id="r1",
            event_id=1,
            item_a="a",
            item_b="b",
            winner_id="a",
        )

        with pytest.raises(ComputationError):
            processor.process(ItemState(item_id="a"), [event], {}, None, NOW)

    def test_reliability_credited_on_item_a_only(self, processor):
        event = _comparison(1, mean_a=1500.0, mean_b=1000.0)

        a = processor.process(ItemState(item_id="a"), [event], {}, None, NOW)
        b = processor.process(ItemState(item_id="b"), [event], {}, None, NOW)

        [delta] = a.rater_deltas
        assert delta.reliability_samples == 1
        assert delta.reliability_delta > 0
        assert b.rater_deltas == []

    def test_coin_flip_ignored_for_reliability(self, processor):
        outcome = processor.process(ItemState(item_id="a"), [_comparison(1)], {}, None, NOW)

        assert outcome.rater_deltas == []


class TestSignalAndBoostReplay:
    def test_signal_folds_into_average_and_rater(self, processor):
        outcome = processor.process(ItemState(item_id="a"), [_signal(1, 60.0)], {}, None, NOW)

        assert outcome.item.signal_count == 1
        assert outcome.item.signal_weight == pytest.approx(1.0)
        assert outcome.item.signal_avg is not None
        [delta] = outcome.rater_deltas
        assert delta.count == 1
        assert delta.mean == pytest.approx(60.0)

    def test_signal_weighted_by_rater_reliability(self, processor):
        from src.calibration.schemas import RaterState

        raters = {"r1": RaterState(rater_id="r1", reliability=0.5)}

        outcome = processor.process(
            ItemState(item_id="a"), [_signal(1, 60.0)], raters, None, NOW
        )

        assert outcome.item.signal_weight == pytest.approx(0.5)

    def test_boost(self, processor):
        outcome = processor.process(ItemState(item_id="a"), [_boost(1)], {}, None, NOW)

        assert outcome.item.boost_count == 1
        assert outcome.item.boost_weight == pytest.approx(1.0)
        assert outcome.score.breakdown.boost > 0

    def test_non_finite_state_raises(self, processor):
        item = ItemState(item_id="a", mean=float("nan"))

        with pytest.raises(ComputationError):
            processor.process(item, [_boost(1)], {}, None, NOW)


class TestPublishing:
    def test_first_observation_published(self, processor):
        outcome = processor.process(ItemState(item_id="a"), [_boost(1)], {}, None, NOW)

        assert outcome.decision.reason == PublishReason.FIRST_PUBLISH
        assert outcome.published.item_id == "a"
        assert outcome.published.published_at == NOW
        assert outcome.published.score == pytest.approx(outcome.score.score)

    def test_unobserved_item_not_published(self, processor):
        outcome = processor.process(ItemState(item_id="a"), [], {}, None, NOW)

        assert outcome.published is None
        assert outcome.decision.reason == PublishReason.NO_OBSERVATIONS

    def test_frozen_item_not_published(self, processor):
        item = ItemState(item_id="a", frozen=True)

        outcome = processor.process(item, [_boost(1)], {}, None, NOW)

        assert outcome.published is None
        assert outcome.decision.reason == PublishReason.FROZEN
        assert outcome.item.boost_count == 1

    def test_unchanged_score_not_republished(self, processor):
        first = processor.process(ItemState(item_id="a"), [_boost(1)], {}, None, NOW)

        again = processor.process(first.item, [], {}, first.published, NOW)

        assert again.published is None
        assert again.decision.reason == PublishReason.BELOW_THRESHOLD

    def test_large_change_republished(self, processor):
        previous = PublishedScore(item_id="a", score=5.0, confidence=0.0, published_at=NOW)

        outcome = processor.process(ItemState(item_id="a"), [_boost(1)], {}, previous, NOW)

        assert outcome.decision.reason == PublishReason.SCORE_DELTA

    def test_thin_evidence_keeps_score_provisional(self, processor):
        item = ItemState(
            item_id="a",
            mean=1600.0,
            sigma=80.0,
            comparison_count=40,
            signal_sum=700.0,
            signal_weight=10.0,
            signal_count=10,
            reliability_sum=50.0,
            reliability_samples=50,
            last_event_id=60,
        )
        one_opponent = Evidence(
            comparisons=40, unique_opponents=1, signals=10, unique_signal_raters=4
        )

        broad = processor.process(item, [_boost(61)], {}, None, NOW)
        thin = processor.process(item, [_boost(61)], {}, None, NOW, evidence=one_opponent)

        assert broad.published.provisional is False
        assert thin.published.provisional is True
