"""Admin endpoints: item registration, recompute overrides and pipeline status."""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.api.auth import verify_api_key
from src.api.dependencies import get_ingestion_service, get_scheduler, get_store
from src.api.models import (
    DirtyEntryResponse,
    ErrorResponse,
    MarkDirtyRequest,
    PipelineStatusResponse,
    RegisterItemsRequest,
    RegisterItemsResponse,
)
from src.errors import ValidationError
from src.ingestion.service import IngestionService
from src.storage.base import RatingStore
from src.storage.schemas import DirtyEntry
from src.worker.config import WorkerConfig
from src.worker.scheduler import Scheduler

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/admin")

_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    422: {"model": ErrorResponse, "description": "Unknown item or invalid value"},
}


def _entry_response(entry: DirtyEntry) -> DirtyEntryResponse:
    return DirtyEntryResponse(
        item_id=entry.item_id,
        priority=entry.priority,
        version=entry.version,
        attempts=entry.attempts,
        enqueued_at=entry.enqueued_at.isoformat(),
    )


def _unprocessable(e: ValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.post(
    "/items",
    response_model=RegisterItemsResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_RESPONSES,
    summary="Register items",
    description="Create default ratings for new item ids. Existing items are untouched.",
)
async def register_items(
    request: RegisterItemsRequest,
    api_key: str = Depends(verify_api_key),
    service: IngestionService = Depends(get_ingestion_service),
) -> RegisterItemsResponse:
    try:
        created = await service.register_items(request.item_ids)
    except ValidationError as e:
        raise _unprocessable(e)
    return RegisterItemsResponse(requested=len(request.item_ids), created=created)


@router.post(
    "/items/{item_id}/dirty",
    response_model=DirtyEntryResponse,
    responses=_RESPONSES,
    summary="Force a recompute",
)
async def mark_dirty(
    item_id: str,
    request: MarkDirtyRequest,
    api_key: str = Depends(verify_api_key),
    service: IngestionService = Depends(get_ingestion_service),
) -> DirtyEntryResponse:
    try:
        entry = await service.mark_dirty(item_id, request.priority)
    except ValidationError as e:
        raise _unprocessable(e)
    return _entry_response(entry)


@router.post(
    "/items/{item_id}/unfreeze",
    response_model=DirtyEntryResponse,
    responses=_RESPONSES,
    summary="Unfreeze an item after a computation error",
)
async def unfreeze(
    item_id: str,
    api_key: str = Depends(verify_api_key),
    service: IngestionService = Depends(get_ingestion_service),
) -> DirtyEntryResponse:
    try:
        entry = await service.unfreeze(item_id)
    except ValidationError as e:
        raise _unprocessable(e)
    return _entry_response(entry)


@router.get(
    "/pipeline",
    response_model=PipelineStatusResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Dirty-set backlog and store totals",
)
async def pipeline_status(
    api_key: str = Depends(verify_api_key),
    store: RatingStore = Depends(get_store),
    scheduler: Scheduler | None = Depends(get_scheduler),
) -> PipelineStatusResponse:
    pipeline = await store.pipeline_status(
        datetime.now(timezone.utc), WorkerConfig().high_priority_threshold
    )
    last_batch = None
    if scheduler is not None and scheduler.last_result is not None:
        last_batch = scheduler.last_result.to_dict()
    return PipelineStatusResponse(status=pipeline.to_dict(), last_batch=last_batch)
