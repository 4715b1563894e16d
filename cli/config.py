from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_SEND_INTERVAL = 0.0

_BASE_URL_ENV = "API_BASE_URL"
_TIMEOUT_ENV = "CLI_REQUEST_TIMEOUT"
_SEND_INTERVAL_ENV = "CLI_SEND_INTERVAL"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    send_interval: float = DEFAULT_SEND_INTERVAL


def _read_float(value: Optional[str], default: float, allow_zero: bool = False) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def load_config(
    base_url: Optional[str] = None,
    request_timeout: Optional[float] = None,
    send_interval: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if request_timeout is None:
        request_timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_REQUEST_TIMEOUT)
    if send_interval is None:
        send_interval = _read_float(
            os.getenv(_SEND_INTERVAL_ENV), DEFAULT_SEND_INTERVAL, allow_zero=True
        )
    return CLIConfig(
        base_url=url.rstrip("/"),
        request_timeout=request_timeout,
        send_interval=send_interval,
    )
