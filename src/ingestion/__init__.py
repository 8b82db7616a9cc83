"""Event ingestion and dirty-set tracking."""

from src.ingestion.config import IngestionConfig
from src.ingestion.schemas import (
    BoostRequest,
    ComparisonRequest,
    IngestAck,
    IngestRequest,
    SignalRequest,
)
from src.ingestion.service import IngestionService

__all__ = [
    "BoostRequest",
    "ComparisonRequest",
    "IngestAck",
    "IngestRequest",
    "IngestionConfig",
    "IngestionService",
    "SignalRequest",
]
