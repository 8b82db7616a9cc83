"""Batch worker and scheduler for dirty-item replay."""

from src.worker.config import WorkerConfig
from src.worker.processor import ItemProcessor, ProcessOutcome
from src.worker.scheduler import Scheduler
from src.worker.worker import BatchResult, BatchWorker, WorkerState

__all__ = [
    "BatchResult",
    "BatchWorker",
    "ItemProcessor",
    "ProcessOutcome",
    "Scheduler",
    "WorkerConfig",
    "WorkerState",
]
