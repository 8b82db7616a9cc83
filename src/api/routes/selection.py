"""Selection endpoint: which pair or single item to show next."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.api.auth import verify_api_key
from src.api.dependencies import get_selection_service
from src.api.models import ErrorResponse, SelectionRequest, SelectionResponse
from src.errors import SelectionStarvedError
from src.selection.schemas import PairSelection
from src.selection.service import SelectionMode, SelectionService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/selection")


@router.post(
    "/next",
    response_model=SelectionResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        409: {"model": ErrorResponse, "description": "Pool too small to select from"},
        422: {"model": ErrorResponse, "description": "Invalid request parameters"},
    },
    summary="Select what to show next",
    description=(
        "Pick the most informative pair (mode=pair) or the item most in need "
        "of a raw signal (mode=single) from the caller's eligible pool. "
        "Ids unknown to the engine are ignored."
    ),
)
async def next_selection(
    request: SelectionRequest,
    api_key: str = Depends(verify_api_key),
    service: SelectionService = Depends(get_selection_service),
) -> SelectionResponse:
    start_time = time.perf_counter()

    weights = request.priority_weights or {}
    bad = [item_id for item_id, w in weights.items() if not 0.0 <= w <= 1.0]
    if bad:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"priority_weights must be within [0, 1]: {', '.join(bad[:5])}",
        )

    try:
        selection = await service.select(
            request.eligible_pool,
            SelectionMode(request.mode),
            weights,
        )
    except SelectionStarvedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    latency_ms = (time.perf_counter() - start_time) * 1000

    if isinstance(selection, PairSelection):
        item_ids = [selection.item_a, selection.item_b]
        repeated = selection.repeated
    else:
        item_ids = [selection.item_id]
        repeated = False

    return SelectionResponse(
        mode=request.mode,
        item_ids=item_ids,
        score=round(selection.score, 6),
        rationale=selection.rationale,
        reasons=selection.reasons,
        repeated=repeated,
        latency_ms=round(latency_ms, 2),
    )
