from __future__ import annotations

from pathlib import Path
from typing import Iterable

from datastore.mock_database import build_default_database
from services.ingestion import build_default_ingestion
from settings import get_settings
from storage.window_cache import build_default_cache


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    database_path = tmp_path / "db.json"

    monkeypatch.setenv("SAMPLES_PER_MINUTE", "3")
    monkeypatch.setenv("MINUTES_PER_HOUR", "10")
    monkeypatch.setenv("STORE_RETRY_ATTEMPTS", "0")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "0.5")
    monkeypatch.setenv("DATASTORE_PERSISTENCE_PATH", str(database_path))
    monkeypatch.setenv("INGEST_WORKER_COUNT", "2")
    monkeypatch.setenv("INGEST_BATCH_SIZE", "7")

    caches = (
        get_settings,
        build_default_cache,
        build_default_database,
        build_default_ingestion,
    )
    _clear_caches(caches)

    ingestion = build_default_ingestion()

    try:
        assert ingestion.aggregator.samples_per_minute == 3
        assert ingestion.aggregator.minutes_per_hour == 10
        assert ingestion.aggregator.retry_attempts == 0
        assert ingestion.aggregator.cache.lock_timeout == 0.5
        assert ingestion.database.persistence_path == Path(database_path)
        assert ingestion.executor._max_workers == 2
        assert ingestion.batch_size == 7
        assert ingestion.timeout == 0.5
    finally:
        ingestion.shutdown()
        _clear_caches(caches)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("SAMPLES_PER_MINUTE", "zero")
    monkeypatch.setenv("MINUTES_PER_HOUR", "-5")
    monkeypatch.setenv("STORE_RETRY_DELAY_SECONDS", "-1")
    monkeypatch.setenv("INGEST_WORKER_COUNT", "  ")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("DATASTORE_PERSISTENCE_PATH", "")
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert settings.samples_per_minute == 6
        assert settings.minutes_per_hour == 60
        assert settings.store_retry_delay == 0.05
        assert settings.ingest_workers == 4
        assert settings.log_level == "DEBUG"
        assert settings.datastore_persistence_path is None
    finally:
        get_settings.cache_clear()


def test_defaults(monkeypatch) -> None:
    for name in (
        "SAMPLES_PER_MINUTE",
        "MINUTES_PER_HOUR",
        "MINUTE_WINDOW_TTL_SECONDS",
        "HOUR_WINDOW_TTL_SECONDS",
        "STORE_RETRY_ATTEMPTS",
        "STORE_RETRY_DELAY_SECONDS",
        "STORE_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert (settings.samples_per_minute, settings.minutes_per_hour) == (6, 60)
        assert (settings.minute_ttl_seconds, settings.hour_ttl_seconds) == (3600, 86400)
        assert settings.store_retry_attempts == 3
        assert settings.store_timeout == 2.0
    finally:
        get_settings.cache_clear()
