"""Publish debouncing.

A recomputed score is published only when it differs meaningfully from the
last published one, so readers are not flooded with noise-level updates.
"""

from bisect import bisect_right
from datetime import datetime

from src.scoring.config import ScoringConfig
from src.scoring.schemas import PublishDecision, PublishReason, ScoreResult
from src.storage.schemas import PublishedScore


def tier_index(value: float, boundaries: list[float]) -> int:
    """Number of boundaries at or below value."""
    return bisect_right(sorted(boundaries), value)


def should_publish(
    previous: PublishedScore | None,
    candidate: ScoreResult,
    now: datetime,
    has_observations: bool = True,
    frozen: bool = False,
    config: ScoringConfig | None = None,
) -> PublishDecision:
    """Decide whether candidate replaces the previously published score."""
    config = config or ScoringConfig()

    if frozen:
        return PublishDecision(False, PublishReason.FROZEN)
    if not has_observations:
        return PublishDecision(False, PublishReason.NO_OBSERVATIONS)
    if previous is None:
        return PublishDecision(True, PublishReason.FIRST_PUBLISH)

    if config.min_republish_seconds > 0:
        elapsed = (now - previous.published_at).total_seconds()
        if elapsed < config.min_republish_seconds:
            return PublishDecision(False, PublishReason.TOO_SOON)

    if abs(candidate.score - previous.score) >= config.score_delta_threshold:
        return PublishDecision(True, PublishReason.SCORE_DELTA)
    if abs(candidate.confidence - previous.confidence) >= config.confidence_delta_threshold:
        return PublishDecision(True, PublishReason.CONFIDENCE_DELTA)
    if tier_index(candidate.score, config.quality_tiers) != tier_index(
        previous.score, config.quality_tiers
    ):
        return PublishDecision(True, PublishReason.QUALITY_TIER)
    if tier_index(candidate.confidence, config.confidence_tiers) != tier_index(
        previous.confidence, config.confidence_tiers
    ):
        return PublishDecision(True, PublishReason.CONFIDENCE_TIER)

    return PublishDecision(False, PublishReason.BELOW_THRESHOLD)
