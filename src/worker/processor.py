"""
Per-item event replay.

Replays one item's pending events, in event id order, through the rating
and calibration engines, then aggregates and gates the new score. Pure with
respect to the store: the caller loads the inputs and commits the result.

Each comparison is replayed from one side only: the item's own working
rating against the opponent's pre-match snapshot stored on the event. The
two items of a comparison can therefore be processed by different workers
in any order. Rater reliability for a comparison is credited once, when
item_a replays it.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime

from src.calibration import engine as calibration
from src.calibration.config import CalibrationConfig
from src.calibration.schemas import RaterDelta, RaterState
from src.errors import ComputationError
from src.rating import engine as rating
from src.rating.config import RatingConfig
from src.scoring.aggregator import compute_score
from src.scoring.config import ScoringConfig
from src.scoring.gates import should_publish
from src.scoring.schemas import PublishDecision, ScoreResult
from src.storage.schemas import Event, EventType, Evidence, ItemState, PublishedScore


@dataclass
class ProcessOutcome:
    """Result of replaying one item."""

    item: ItemState
    score: ScoreResult
    decision: PublishDecision
    published: PublishedScore | None = None
    rater_deltas: list[RaterDelta] = field(default_factory=list)
    replayed: Counter = field(default_factory=Counter)


class _RaterWork:
    """Working copy of a rater plus the delta accumulated against the stored row."""

    def __init__(self, stored: RaterState):
        self.state = replace(stored)
        self.delta = RaterDelta(rater_id=stored.rater_id)

    def ingest(self, raw_value: float) -> None:
        self.state = calibration.ingest_raw_signal(self.state, raw_value)
        count, mean, m2 = calibration.welford_step(
            self.delta.count, self.delta.mean, self.delta.m2, raw_value
        )
        self.delta.count, self.delta.mean, self.delta.m2 = count, mean, m2

    def observe(self, aligned: bool, weight: float, config: CalibrationConfig) -> None:
        before = self.state.reliability
        self.state = calibration.update_reliability(self.state, aligned, weight, config)
        self.delta.reliability_delta += self.state.reliability - before
        self.delta.reliability_samples += 1


class ItemProcessor:
    """
    Replays pending events for one item and computes its new score.

    Usage:
        processor = ItemProcessor()
        outcome = processor.process(item, events, raters, previous, now)
    """

    def __init__(
        self,
        rating_config: RatingConfig | None = None,
        calibration_config: CalibrationConfig | None = None,
        scoring_config: ScoringConfig | None = None,
    ):
        self._rating_config = rating_config or RatingConfig()
        self._calibration_config = calibration_config or CalibrationConfig()
        self._scoring_config = scoring_config or ScoringConfig()

    def process(
        self,
        item: ItemState,
        events: list[Event],
        raters: dict[str, RaterState],
        previous: PublishedScore | None,
        now: datetime,
        evidence: Evidence | None = None,
    ) -> ProcessOutcome:
        """
        Replay events into a copy of item and decide whether to publish.

        Args:
            item: Stored item state (not modified)
            events: Pending events touching the item, oldest first
            raters: Stored state of the raters behind events
            previous: Last published score, if any
            now: Clock used for the publish gate and timestamps
            evidence: Distinct opponents and signal raters through the
                last replayed event; keeps thin evidence provisional

        Returns:
            ProcessOutcome with the new item state and rater deltas

        Raises:
            ComputationError: If replay produced a non-finite state.
        """
        working = replace(item)
        work: dict[str, _RaterWork] = {}
        signals: list[tuple[_RaterWork, float]] = []
        replayed: Counter = Counter()

        def rater(rater_id: str) -> _RaterWork:
            if rater_id not in work:
                stored = raters.get(rater_id) or RaterState(rater_id=rater_id)
                work[rater_id] = _RaterWork(stored)
            return work[rater_id]

        for event in sorted(events, key=lambda e: e.event_id):
            if event.event_id <= working.last_event_id:
                continue
            r = rater(event.rater_id)

            if event.event_type == EventType.COMPARISON:
                self._replay_comparison(working, event, r)
            elif event.event_type == EventType.RAW_SIGNAL:
                calibrated = calibration.normalize(
                    event.raw_value, r.state, self._calibration_config
                )
                r.ingest(event.raw_value)
                weight = r.state.reliability
                working.signal_sum += calibrated * weight
                working.signal_weight += weight
                working.signal_count += 1
                signals.append((r, calibrated))
            elif event.event_type == EventType.BOOST:
                working.boost_count += 1
                working.boost_weight += r.state.reliability

            working.reliability_sum += r.state.reliability
            working.reliability_samples += 1
            working.last_event_id = event.event_id
            replayed[event.event_type.value] += 1

        if not working.is_finite():
            raise ComputationError(
                f"Replay produced non-finite state for {item.item_id}",
                item_id=item.item_id,
            )

        score = compute_score(
            mean=working.mean,
            sigma=working.sigma,
            signal_avg=working.signal_avg,
            boost_count=working.boost_weight,
            avg_reliability=working.avg_reliability,
            comparison_count=working.comparison_count,
            signal_count=working.signal_count,
            config=self._scoring_config,
            evidence=evidence,
        )

        # Signal alignment is judged against the freshly computed consensus
        for r, calibrated in signals:
            aligned = calibration.signal_alignment(
                calibrated, score.score, self._calibration_config
            )
            r.observe(aligned, 1.0, self._calibration_config)

        decision = should_publish(
            previous,
            score,
            now,
            has_observations=working.has_observations,
            frozen=working.frozen,
            config=self._scoring_config,
        )
        published = None
        if decision.publish:
            published = PublishedScore(
                item_id=working.item_id,
                score=score.score,
                confidence=score.confidence,
                provisional=score.provisional,
                rating_component=score.breakdown.rating,
                signal_component=score.breakdown.signal,
                boost_component=score.breakdown.boost,
                reliability=score.breakdown.reliability,
                published_at=now,
            )

        return ProcessOutcome(
            item=working,
            score=score,
            decision=decision,
            published=published,
            rater_deltas=[w.delta for w in work.values() if not w.delta.is_empty],
            replayed=replayed,
        )

    def _replay_comparison(self, working: ItemState, event: Event, r: _RaterWork) -> None:
        is_a = event.item_a == working.item_id
        if is_a:
            opp_mean, opp_sigma = event.pre_mean_b, event.pre_sigma_b
        else:
            opp_mean, opp_sigma = event.pre_mean_a, event.pre_sigma_a
        if opp_mean is None or opp_sigma is None:
            raise ComputationError(
                f"Comparison event {event.event_id} has no opponent snapshot",
                item_id=working.item_id,
            )

        won = event.winner_id == working.item_id
        result = rating.update(
            working.mean,
            working.sigma,
            opp_mean,
            opp_sigma,
            rating.Outcome.A_WINS if won else rating.Outcome.B_WINS,
            high_weight=event.high_weight,
            config=self._rating_config,
        )
        working.mean = result.a_mean
        working.sigma = result.a_sigma
        working.comparison_count += 1
        working.last_compared_at = event.created_at

        if is_a and event.pre_mean_a is not None:
            expected_a = rating.expected_score(
                event.pre_mean_a, event.pre_mean_b, self._rating_config.logistic_scale
            )
            expected_for_choice = (
                expected_a if event.winner_id == event.item_a else 1.0 - expected_a
            )
            alignment = calibration.comparison_alignment(
                expected_for_choice, self._calibration_config
            )
            if alignment is not None:
                aligned, weight = alignment
                r.observe(aligned, weight, self._calibration_config)
