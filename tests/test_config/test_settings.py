"""Tests for central and per-component settings."""

import pytest
from pydantic import ValidationError

from src.config.settings import Settings
from src.ingestion.config import IngestionConfig
from src.worker.config import WorkerConfig


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STORE_BACKEND", raising=False)

        settings = Settings(_env_file=None)

        assert settings.store_backend == "postgres"
        assert settings.triggers_enabled is True
        assert settings.embedded_worker is False
        assert not settings.uses_memory_store
        assert not settings.is_production

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "memory")
        monkeypatch.setenv("ENVIRONMENT", "production")

        settings = Settings(_env_file=None)

        assert settings.uses_memory_store
        assert settings.is_production

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, store_backend="sqlite")

    def test_rejects_inverted_backoff_bounds(self):
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                worker_backoff_base_delay=30.0,
                worker_backoff_max_delay=5.0,
            )


class TestWorkerConfig:
    def test_budget_must_fit_claim_timeout(self):
        with pytest.raises(ValidationError):
            WorkerConfig(_env_file=None, batch_budget_seconds=400, claim_timeout_seconds=300)

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("WORKER_BATCH_SIZE", "64")

        assert WorkerConfig(_env_file=None).batch_size == 64


class TestIngestionConfig:
    def test_raw_range_order(self):
        with pytest.raises(ValidationError):
            IngestionConfig(raw_min=10, raw_max=10)

    def test_milestones_from_env(self, monkeypatch):
        monkeypatch.setenv("INGESTION_MILESTONES", "[3, 30]")

        assert IngestionConfig().milestones == [3, 30]
