"""Shared fixtures for API tests."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.auth import verify_api_key
from src.api.dependencies import (
    get_ingestion_service,
    get_scheduler,
    get_selection_service,
    get_store,
    get_trigger_queue,
)
from src.ingestion.service import IngestionService
from src.selection.config import SelectionConfig
from src.selection.service import SelectionService
from src.storage.memory import InMemoryRatingStore


@pytest.fixture
def api_store() -> InMemoryRatingStore:
    return InMemoryRatingStore()


@pytest.fixture
def mock_trigger_queue():
    """Mock TriggerQueue."""
    queue = AsyncMock()
    queue.publish = AsyncMock(return_value="1-0")
    queue.health_check = AsyncMock(return_value=True)
    return queue


@pytest.fixture
def ingestion_service(api_store, mock_trigger_queue) -> IngestionService:
    return IngestionService(api_store, trigger_queue=mock_trigger_queue)


@pytest.fixture
def selection_service(api_store) -> SelectionService:
    return SelectionService(api_store, config=SelectionConfig(seed=3))


@pytest.fixture
def client(api_store, mock_trigger_queue, ingestion_service, selection_service):
    """FastAPI TestClient backed by an in-memory store."""
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_store] = lambda: api_store
    app.dependency_overrides[get_trigger_queue] = lambda: mock_trigger_queue
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion_service
    app.dependency_overrides[get_selection_service] = lambda: selection_service
    app.dependency_overrides[get_scheduler] = lambda: None

    with TestClient(app) as c:
        c.post("/admin/items", json={"item_ids": ["a", "b", "c"]})
        yield c

    app.dependency_overrides.clear()
