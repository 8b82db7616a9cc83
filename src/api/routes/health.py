"""Liveness and dependency health. Not authenticated and exempt from the request timeout."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_store, get_trigger_queue
from src.api.models import ComponentHealth, HealthResponse
from src.queues.triggers import TriggerQueue
from src.storage.base import RatingStore

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_component(name: str, check: Callable[[], Awaitable[bool]]) -> ComponentHealth:
    """Run one component check, timing it and turning errors into 'unhealthy'."""
    started = time.perf_counter()
    error: str | None = None
    try:
        healthy = await check()
    except Exception as e:
        logger.warning("Health check failed", component=name, error=str(e))
        healthy, error = False, str(e)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    return ComponentHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=elapsed_ms,
        details={"error": error} if error else {},
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the rating store and the trigger stream.",
)
async def health_check(
    store: RatingStore = Depends(get_store),
    trigger_queue: TriggerQueue | None = Depends(get_trigger_queue),
) -> HealthResponse:
    components = {"store": await _check_component("store", store.health_check)}

    if trigger_queue is None:
        components["trigger_queue"] = ComponentHealth(status="disabled")
    else:
        components["trigger_queue"] = await _check_component(
            "trigger_queue", trigger_queue.health_check
        )

    # The trigger stream is optional; without it the service is degraded, not down
    if components["store"].status != "healthy":
        overall = "unhealthy"
    elif components["trigger_queue"].status == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(status=overall, components=components)
