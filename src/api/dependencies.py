"""
Dependency injection for FastAPI endpoints.
"""

from functools import lru_cache

import structlog

from src.config.settings import get_settings
from src.ingestion.service import IngestionService
from src.queues.triggers import TriggerQueue
from src.scoring.config import ScoringConfig
from src.selection.service import SelectionService
from src.storage import RatingStore, create_store
from src.worker.scheduler import Scheduler

logger = structlog.get_logger(__name__)

# Global service instances (initialized on first request)
_store: RatingStore | None = None
_trigger_queue: TriggerQueue | None = None
_trigger_queue_checked = False
_ingestion_service: IngestionService | None = None
_selection_service: SelectionService | None = None
_scheduler: Scheduler | None = None


async def get_store() -> RatingStore:
    """Get the connected rating store."""
    global _store

    if _store is None:
        store = create_store()
        await store.connect()
        _store = store

    return _store


async def get_trigger_queue() -> TriggerQueue | None:
    """
    Get the trigger stream producer, or None when triggers are disabled.

    A Redis outage at startup disables triggers for this process; the
    interval scheduler still picks up every dirty item.
    """
    global _trigger_queue, _trigger_queue_checked

    settings = get_settings()
    if not settings.triggers_enabled or settings.embedded_worker:
        return None

    if not _trigger_queue_checked:
        _trigger_queue_checked = True
        queue = TriggerQueue()
        try:
            await queue.connect()
            _trigger_queue = queue
        except Exception as e:
            logger.warning("Trigger queue unavailable, triggers disabled", error=str(e))

    return _trigger_queue


async def get_scheduler() -> Scheduler | None:
    """Get the in-process scheduler (only with EMBEDDED_WORKER)."""
    global _scheduler

    settings = get_settings()
    if not settings.embedded_worker:
        return None

    if _scheduler is None:
        _scheduler = Scheduler(await get_store())

    return _scheduler


async def get_ingestion_service() -> IngestionService:
    """Get the ingestion service."""
    global _ingestion_service

    if _ingestion_service is None:
        scheduler = await get_scheduler()
        _ingestion_service = IngestionService(
            await get_store(),
            trigger_queue=await get_trigger_queue(),
            local_trigger=scheduler.trigger if scheduler else None,
        )

    return _ingestion_service


async def get_selection_service() -> SelectionService:
    """Get the selection service; its recent-pairs cache lives for the process."""
    global _selection_service

    if _selection_service is None:
        _selection_service = SelectionService(await get_store())

    return _selection_service


@lru_cache
def get_scoring_config() -> ScoringConfig:
    """Scoring thresholds used to report evidence progress."""
    return ScoringConfig()


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _store, _trigger_queue, _trigger_queue_checked
    global _ingestion_service, _selection_service, _scheduler

    _ingestion_service = None
    _selection_service = None

    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None

    if _trigger_queue is not None:
        await _trigger_queue.close()
        _trigger_queue = None
    _trigger_queue_checked = False

    if _store is not None:
        await _store.close()
        _store = None
