"""Tests for the selection endpoint."""


class TestNextSelection:
    def test_pair(self, client):
        resp = client.post("/selection/next", json={"eligible_pool": ["a", "b", "c"]})

        assert resp.status_code == 200
        data = resp.json()
        assert data["mode"] == "pair"
        assert len(data["item_ids"]) == 2
        assert set(data["item_ids"]) <= {"a", "b", "c"}
        assert data["rationale"]
        assert data["latency_ms"] >= 0

    def test_single(self, client):
        resp = client.post(
            "/selection/next", json={"eligible_pool": ["a", "b"], "mode": "single"}
        )

        assert resp.status_code == 200
        assert len(resp.json()["item_ids"]) == 1

    def test_unknown_ids_ignored(self, client):
        resp = client.post(
            "/selection/next", json={"eligible_pool": ["a", "ghost", "b"]}
        )

        assert resp.status_code == 200
        assert set(resp.json()["item_ids"]) == {"a", "b"}

    def test_starved_pool(self, client):
        resp = client.post("/selection/next", json={"eligible_pool": ["a", "ghost"]})

        assert resp.status_code == 409

    def test_empty_pool_rejected(self, client):
        resp = client.post("/selection/next", json={"eligible_pool": []})

        assert resp.status_code == 422

    def test_priority_weight_out_of_range(self, client):
        resp = client.post(
            "/selection/next",
            json={"eligible_pool": ["a", "b"], "priority_weights": {"a": 1.5}},
        )

        assert resp.status_code == 422

    def test_invalid_mode(self, client):
        resp = client.post(
            "/selection/next", json={"eligible_pool": ["a", "b"], "mode": "triple"}
        )

        assert resp.status_code == 422
