from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar

_Number = TypeVar("_Number", int, float)

_SAMPLES_PER_MINUTE_ENV = "SAMPLES_PER_MINUTE"
_MINUTES_PER_HOUR_ENV = "MINUTES_PER_HOUR"
_MINUTE_TTL_ENV = "MINUTE_WINDOW_TTL_SECONDS"
_HOUR_TTL_ENV = "HOUR_WINDOW_TTL_SECONDS"
_RETRY_ATTEMPTS_ENV = "STORE_RETRY_ATTEMPTS"
_RETRY_DELAY_ENV = "STORE_RETRY_DELAY_SECONDS"
_STORE_TIMEOUT_ENV = "STORE_TIMEOUT_SECONDS"
_WORKER_COUNT_ENV = "INGEST_WORKER_COUNT"
_BATCH_SIZE_ENV = "INGEST_BATCH_SIZE"
_DATASTORE_PATH_ENV = "DATASTORE_PERSISTENCE_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    samples_per_minute: int
    minutes_per_hour: int
    minute_ttl_seconds: int
    hour_ttl_seconds: int
    store_retry_attempts: int
    store_retry_delay: float
    store_timeout: float
    ingest_workers: int
    ingest_batch_size: int
    datastore_persistence_path: Optional[str]
    log_level: str


def _read_env(name: str) -> Optional[str]:
    """Stripped value of ``name``; ``None`` when unset or blank."""
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    # Set-but-blank disables the option instead of restoring the default.
    if os.getenv(name) is None:
        return default
    return _read_env(name)


def _read_number(
    name: str,
    default: _Number,
    parse: Callable[[str], _Number],
    allow_zero: bool = False,
) -> _Number:
    candidate = _read_env(name)
    if candidate is None:
        return default
    try:
        parsed = parse(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def _read_log_level(default: str) -> str:
    candidate = _read_env(_LOG_LEVEL_ENV)
    return candidate.upper() if candidate else default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        samples_per_minute=_read_number(_SAMPLES_PER_MINUTE_ENV, 6, int),
        minutes_per_hour=_read_number(_MINUTES_PER_HOUR_ENV, 60, int),
        minute_ttl_seconds=_read_number(_MINUTE_TTL_ENV, 3600, int),
        hour_ttl_seconds=_read_number(_HOUR_TTL_ENV, 86400, int),
        store_retry_attempts=_read_number(_RETRY_ATTEMPTS_ENV, 3, int, allow_zero=True),
        store_retry_delay=_read_number(_RETRY_DELAY_ENV, 0.05, float, allow_zero=True),
        store_timeout=_read_number(_STORE_TIMEOUT_ENV, 2.0, float),
        ingest_workers=_read_number(_WORKER_COUNT_ENV, 4, int),
        ingest_batch_size=_read_number(_BATCH_SIZE_ENV, 50, int),
        datastore_persistence_path=_read_optional_env(
            _DATASTORE_PATH_ENV, "./tmp/device_db.json"
        ),
        log_level=_read_log_level("INFO"),
    )
