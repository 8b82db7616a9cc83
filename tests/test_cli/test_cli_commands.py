"""Tests for the taste-engine CLI against an in-memory store."""

import asyncio
import json

import pytest
from click.testing import CliRunner

from src.cli import main
from src.config.settings import get_settings
from src.ingestion.schemas import BoostRequest
from src.ingestion.service import IngestionService
from src.storage.memory import InMemoryRatingStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def shared_store(monkeypatch) -> InMemoryRatingStore:
    """Memory backend shared across CLI invocations within one test."""
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("TRIGGERS_ENABLED", "false")
    get_settings.cache_clear()

    store = InMemoryRatingStore()
    monkeypatch.setattr("src.storage.create_store", lambda backend=None: store)
    yield store
    get_settings.cache_clear()


class TestRegister:
    def test_register_new_and_known(self, runner, shared_store):
        first = runner.invoke(main, ["register", "a", "b"])
        second = runner.invoke(main, ["register", "b", "c"])

        assert first.exit_code == 0
        assert "Registered 2 new item(s) (0 already known)" in first.output
        assert "Registered 1 new item(s) (1 already known)" in second.output

    def test_requires_ids(self, runner, shared_store):
        result = runner.invoke(main, ["register"])

        assert result.exit_code != 0


class TestMarkDirty:
    def test_mark_dirty(self, runner, shared_store):
        runner.invoke(main, ["register", "a"])

        result = runner.invoke(main, ["mark-dirty", "a", "--priority", "30"])

        assert result.exit_code == 0
        assert "Marked a dirty (priority 30, version 1)" in result.output

    def test_unknown_item(self, runner, shared_store):
        result = runner.invoke(main, ["mark-dirty", "ghost"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_priority_range(self, runner, shared_store):
        result = runner.invoke(main, ["mark-dirty", "a", "--priority", "500"])

        assert result.exit_code == 2

    def test_unfreeze(self, runner, shared_store):
        runner.invoke(main, ["register", "a"])
        shared_store._items["a"].frozen = True

        result = runner.invoke(main, ["mark-dirty", "a", "--unfreeze"])

        assert result.exit_code == 0
        assert shared_store._items["a"].frozen is False


class TestRunBatchAndStatus:
    def _seed(self, store):
        async def seed():
            service = IngestionService(store)
            await service.register_items(["a", "b"])
            await service.ingest(BoostRequest(item_id="a", rater_id="r1"))

        asyncio.run(seed())

    def test_status_json(self, runner, shared_store):
        self._seed(shared_store)

        result = runner.invoke(main, ["status", "--json-output"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["dirty_count"] == 1
        assert data["total_items"] == 2

    def test_status_table(self, runner, shared_store):
        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Pipeline Status" in result.output

    def test_run_batch_publishes(self, runner, shared_store):
        self._seed(shared_store)

        result = runner.invoke(main, ["run-batch"])

        assert result.exit_code == 0
        assert "Published:      1" in result.output
        assert shared_store.dirty_snapshot() == {}

    def test_run_batch_drain(self, runner, shared_store):
        async def seed():
            service = IngestionService(shared_store)
            ids = [f"item_{i}" for i in range(5)]
            await service.register_items(ids)
            for item_id in ids:
                await service.mark_dirty(item_id, 10)

        asyncio.run(seed())

        result = runner.invoke(main, ["run-batch", "--batch-size", "2", "--drain"])

        assert result.exit_code == 0
        assert result.output.count("Batch (") == 3
        assert shared_store.dirty_snapshot() == {}


class TestHealth:
    def test_memory_store_healthy(self, runner, shared_store):
        result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "All core services healthy!" in result.output
