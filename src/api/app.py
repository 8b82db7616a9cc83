"""
FastAPI application for the ranking engine.

The API only accepts events, answers selection requests and reads published
scores. Recomputation happens in the scheduler, which runs either as its own
process (``taste-engine worker``) or embedded in this app for the in-memory
backend.
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import cleanup_dependencies, get_scheduler
from src.api.middleware.timeout import TimeoutMiddleware
from src.api.routes import admin, events, health, scores, selection
from src.config.settings import get_settings
from src.errors import TransientStoreError
from src.observability.logging import bind_context, clear_context

logger = structlog.get_logger(__name__)

API_VERSION = "0.1.0"
REQUEST_ID_HEADER = "X-Request-ID"
SCHEDULER_STOP_TIMEOUT = 10.0

OPENAPI_TAGS = [
    {"name": "health", "description": "Service health checks"},
    {"name": "events", "description": "Comparison, raw signal and boost ingestion"},
    {"name": "selection", "description": "Next pair or item to show"},
    {"name": "scores", "description": "Published quality scores"},
    {"name": "admin", "description": "Item registration and recompute controls"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = await get_scheduler()
    scheduler_task: asyncio.Task | None = None
    if scheduler is not None:
        scheduler_task = asyncio.create_task(scheduler.start())
    logger.info("Ranking API started", embedded_scheduler=scheduler is not None)

    yield

    if scheduler is not None and scheduler_task is not None:
        await scheduler.stop()
        try:
            await asyncio.wait_for(scheduler_task, timeout=SCHEDULER_STOP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(
                "Embedded scheduler did not stop in time",
                timeout_seconds=SCHEDULER_STOP_TIMEOUT,
            )
    await cleanup_dependencies()
    logger.info("Ranking API stopped")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Taste Engine API",
        description="""
Aesthetic ranking and selection engine.

Collects pairwise comparisons, raw ratings and boosts from raters, turns them
into a bounded 0-100 quality score per item, and picks what to show next.

Events are acknowledged once durably logged; scores update asynchronously.

## Authentication

Requires `X-API-KEY` header for all requests except `/health`.
        """,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Added before the request-id middleware so the timeout sits inside it
    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        bind_context(request_id=request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(TransientStoreError)
    async def store_unavailable(request: Request, exc: TransientStoreError):
        logger.warning("Store unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Store temporarily unavailable", "error_type": "transient"},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.error("Unhandled exception", path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    for router, tag in (
        (health.router, "health"),
        (events.router, "events"),
        (selection.router, "selection"),
        (scores.router, "scores"),
        (admin.router, "admin"),
    ):
        app.include_router(router, tags=[tag])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "Taste Engine API", "version": API_VERSION, "docs": "/docs"}

    return app
