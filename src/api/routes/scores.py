"""Published score lookup."""

from fastapi import APIRouter, Depends

from src.api.auth import verify_api_key
from src.api.dependencies import get_scoring_config, get_store
from src.api.models import (
    ErrorResponse,
    EvidenceProgressModel,
    ScoreBreakdownModel,
    ScoreResponse,
)
from src.scoring.aggregator import evidence_needed
from src.scoring.config import ScoringConfig
from src.storage.base import RatingStore

router = APIRouter(prefix="/scores")


async def _progress(
    store: RatingStore, item_id: str, config: ScoringConfig
) -> EvidenceProgressModel:
    evidence = await store.evidence_counts(item_id)
    return EvidenceProgressModel(
        comparisons=evidence.comparisons,
        unique_opponents=evidence.unique_opponents,
        signals=evidence.signals,
        unique_signal_raters=evidence.unique_signal_raters,
        needed=evidence_needed(evidence, config),
    )


@router.get(
    "/{item_id}",
    response_model=ScoreResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Get an item's published score",
    description=(
        "Returns the last published score. Items without a published score "
        "return status=unscored rather than a default value. Unscored and "
        "provisional items include the evidence still needed."
    ),
)
async def get_score(
    item_id: str,
    api_key: str = Depends(verify_api_key),
    store: RatingStore = Depends(get_store),
    scoring_config: ScoringConfig = Depends(get_scoring_config),
) -> ScoreResponse:
    published = await store.get_published(item_id)
    item = await store.get_item(item_id)
    frozen = bool(item and item.frozen)

    if published is None:
        return ScoreResponse(
            item_id=item_id,
            status="unscored",
            frozen=frozen,
            progress=await _progress(store, item_id, scoring_config),
        )

    return ScoreResponse(
        item_id=item_id,
        status="scored",
        score=round(published.score, 3),
        confidence=round(published.confidence, 3),
        provisional=published.provisional,
        frozen=frozen,
        last_published_at=published.published_at.isoformat(),
        breakdown=ScoreBreakdownModel(
            rating=round(published.rating_component, 3),
            signal=round(published.signal_component, 3),
            boost=round(published.boost_component, 3),
            reliability=round(published.reliability, 4),
        ),
        progress=(
            await _progress(store, item_id, scoring_config)
            if published.provisional
            else None
        ),
    )
