"""Tests for admin endpoints."""

from unittest.mock import MagicMock

from src.api.dependencies import get_scheduler
from src.worker.worker import BatchResult


class TestRegisterItems:
    def test_register(self, client):
        resp = client.post("/admin/items", json={"item_ids": ["a", "d", "e"]})

        assert resp.status_code == 201
        assert resp.json() == {"requested": 3, "created": 2}

    def test_blank_ids(self, client):
        resp = client.post("/admin/items", json={"item_ids": [" "]})

        assert resp.status_code == 422


class TestMarkDirty:
    def test_mark_dirty(self, client, api_store):
        resp = client.post("/admin/items/c/dirty", json={"priority": 40})

        assert resp.status_code == 200
        assert resp.json()["priority"] == 40
        assert api_store.dirty_snapshot()["c"].priority == 40

    def test_default_priority_is_max(self, client, mock_trigger_queue):
        resp = client.post("/admin/items/c/dirty", json={})

        assert resp.json()["priority"] == 100
        mock_trigger_queue.publish.assert_awaited_once()

    def test_priority_out_of_range(self, client):
        resp = client.post("/admin/items/c/dirty", json={"priority": 101})

        assert resp.status_code == 422

    def test_unknown_item(self, client):
        resp = client.post("/admin/items/nope/dirty", json={"priority": 10})

        assert resp.status_code == 422


class TestUnfreeze:
    def test_unfreeze(self, client, api_store):
        api_store._items["a"].frozen = True
        api_store._items["a"].frozen_reason = "nan"

        resp = client.post("/admin/items/a/unfreeze")

        assert resp.status_code == 200
        assert api_store._items["a"].frozen is False
        assert "a" in api_store.dirty_snapshot()

    def test_unknown_item(self, client):
        assert client.post("/admin/items/nope/unfreeze").status_code == 422


class TestPipelineStatus:
    def test_status(self, client):
        client.post("/events/boost", json={"item_id": "a", "rater_id": "r1"})

        data = client.get("/admin/pipeline").json()

        assert data["status"]["dirty_count"] == 1
        assert data["status"]["high_priority_count"] == 1
        assert data["status"]["total_items"] == 3
        assert data["last_batch"] is None

    def test_includes_last_batch(self, client):
        scheduler = MagicMock()
        scheduler.last_result = BatchResult(worker_id="w1", claimed=3, processed=3)
        client.app.dependency_overrides[get_scheduler] = lambda: scheduler

        data = client.get("/admin/pipeline").json()

        assert data["last_batch"]["worker_id"] == "w1"
        assert data["last_batch"]["processed"] == 3
