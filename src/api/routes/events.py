"""Event ingestion endpoints: comparisons, raw signals and boosts."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.api.auth import verify_api_key
from src.api.dependencies import get_ingestion_service
from src.api.models import (
    BoostEventRequest,
    ComparisonEventRequest,
    ErrorResponse,
    EventAcceptedResponse,
    SignalEventRequest,
)
from src.errors import ValidationError
from src.ingestion.schemas import (
    BoostRequest,
    ComparisonRequest,
    IngestAck,
    IngestRequest,
    SignalRequest,
)
from src.ingestion.service import IngestionService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/events")

_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    422: {"model": ErrorResponse, "description": "Malformed event or unknown item"},
    500: {"model": ErrorResponse, "description": "Server error"},
}


def _to_response(ack: IngestAck) -> EventAcceptedResponse:
    return EventAcceptedResponse(
        event_id=ack.event_id,
        event_type=ack.event_type.value,
        priority=ack.max_priority,
        priorities=ack.priorities,
        triggered=ack.triggered,
    )


async def _ingest(
    service: IngestionService,
    build: type[IngestRequest],
    payload: dict,
) -> EventAcceptedResponse:
    try:
        ack = await service.ingest(build(**payload))
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except Exception as e:
        logger.error("ingest_failed", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record event",
        )
    return _to_response(ack)


@router.post(
    "/comparison",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_RESPONSES,
    summary="Record a pairwise comparison",
)
async def submit_comparison(
    request: ComparisonEventRequest,
    api_key: str = Depends(verify_api_key),
    service: IngestionService = Depends(get_ingestion_service),
) -> EventAcceptedResponse:
    return await _ingest(service, ComparisonRequest, request.model_dump())


@router.post(
    "/signal",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_RESPONSES,
    summary="Record a raw signal rating",
)
async def submit_signal(
    request: SignalEventRequest,
    api_key: str = Depends(verify_api_key),
    service: IngestionService = Depends(get_ingestion_service),
) -> EventAcceptedResponse:
    return await _ingest(service, SignalRequest, request.model_dump())


@router.post(
    "/boost",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_RESPONSES,
    summary="Record a tertiary boost",
)
async def submit_boost(
    request: BoostEventRequest,
    api_key: str = Depends(verify_api_key),
    service: IngestionService = Depends(get_ingestion_service),
) -> EventAcceptedResponse:
    return await _ingest(service, BoostRequest, request.model_dump())
