"""Count-based minute/hour rollup of per-device sensor samples."""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from app.schemas import HourlyValue
from datastore.mock_database import MockDeviceDatabase
from models.errors import DeviceNotFound, TransientStoreError
from models.records import HourAccumulator, MinuteAccumulator, WindowProgress
from storage.window_cache import WindowCache

logger = logging.getLogger(__name__)

SAMPLES_PER_MINUTE = 6
MINUTES_PER_HOUR = 60
MINUTE_TTL_SECONDS = 3600
HOUR_TTL_SECONDS = 86400

_SLOW_SAMPLE_MS = 100


def clean_fields(fields: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    """Keep only finite numeric readings."""
    cleaned: Dict[str, float] = {}
    for name, value in (fields or {}).items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isnan(value) or math.isinf(value):
            continue
        cleaned[str(name)] = float(value)
    return cleaned


def floor_to_hour(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WindowAggregator:
    """Folds samples into minute windows, minutes into hours, hours into rows.

    Windows are count based: a minute closes after ``samples_per_minute``
    samples and an hour after ``minutes_per_hour`` minutes, whatever the
    wall-clock spacing. The whole read-modify-write for a device runs inside
    one cache transaction over its minute and hour keys.
    """

    def __init__(
        self,
        cache: WindowCache,
        database: MockDeviceDatabase,
        samples_per_minute: int = SAMPLES_PER_MINUTE,
        minutes_per_hour: int = MINUTES_PER_HOUR,
        minute_ttl: float = MINUTE_TTL_SECONDS,
        hour_ttl: float = HOUR_TTL_SECONDS,
        retry_attempts: int = 3,
        retry_delay: float = 0.05,
        store_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cache = cache
        self.database = database
        self.samples_per_minute = samples_per_minute
        self.minutes_per_hour = minutes_per_hour
        self.minute_ttl = minute_ttl
        self.hour_ttl = hour_ttl
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.store_timeout = store_timeout
        self._clock = clock
        self._sleep = sleep

    @staticmethod
    def minute_key(device_serial: str) -> str:
        return f"device:{device_serial}:minute"

    @staticmethod
    def hour_key(device_serial: str) -> str:
        return f"device:{device_serial}:hour"

    def ingest(
        self, device_serial: str, fields: Optional[Mapping[str, Any]]
    ) -> Optional[WindowProgress]:
        """Fold one sample into the device's windows.

        Returns ``None`` when the sample carried no usable readings or the
        cache stayed unavailable through every retry. Raises
        ``DeviceNotFound`` only when an hour closes for an unknown device.
        """
        values = clean_fields(fields)
        if not device_serial or not values:
            logger.debug(
                "Ignoring sample without numeric readings",
                extra={"device_serial": device_serial, "reason": "invalid sample"},
            )
            return None

        start_time = time.perf_counter()
        progress = self._accumulate_with_retry(device_serial, values)
        if progress is not None and progress.hour_completed:
            progress.hourly_value = self._complete_hour(device_serial, progress)

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        if processing_ms > _SLOW_SAMPLE_MS:
            logger.warning(
                "Slow sample processing",
                extra={"device_serial": device_serial, "processing_ms": processing_ms},
            )
        return progress

    def _accumulate_with_retry(
        self, device_serial: str, values: Dict[str, float]
    ) -> Optional[WindowProgress]:
        for attempt in range(self.retry_attempts + 1):
            try:
                return self._accumulate(device_serial, values)
            except TransientStoreError as exc:
                if attempt >= self.retry_attempts:
                    logger.error(
                        "Dropping sample after cache retries were exhausted",
                        extra={
                            "device_serial": device_serial,
                            "attempt": attempt + 1,
                            "reason": str(exc),
                        },
                    )
                    return None
                delay = self.retry_delay * (2**attempt)
                logger.warning(
                    "Cache update failed, retrying",
                    extra={
                        "device_serial": device_serial,
                        "attempt": attempt + 1,
                        "reason": str(exc),
                    },
                )
                self._sleep(delay)
        return None

    def _accumulate(self, device_serial: str, values: Dict[str, float]) -> WindowProgress:
        minute_key = self.minute_key(device_serial)
        hour_key = self.hour_key(device_serial)

        with self.cache.transaction(minute_key, hour_key, timeout=self.store_timeout) as tx:
            minute = MinuteAccumulator.from_dict(tx.get(minute_key))
            minute.add(values)
            if minute.count < self.samples_per_minute:
                tx.setex(minute_key, self.minute_ttl, minute.to_dict())
                return WindowProgress(minute_count=minute.count)

            hour = HourAccumulator.from_dict(tx.get(hour_key))
            hour.add_minute(minute.averages())
            tx.delete(minute_key)
            progress = WindowProgress(
                minute_count=minute.count,
                minute_completed=True,
                hour_count=hour.count,
            )
            if hour.count < self.minutes_per_hour:
                tx.setex(hour_key, self.hour_ttl, hour.to_dict())
                return progress

            tx.delete(hour_key)

        progress.hour_completed = True
        progress.hour_averages = hour.averages()
        progress.sample_count = hour.count * minute.count
        logger.info(
            "Hour window closed",
            extra={
                "device_serial": device_serial,
                "hour_count": hour.count,
                "sample_count": progress.sample_count,
            },
        )
        return progress

    def _complete_hour(
        self, device_serial: str, progress: WindowProgress
    ) -> Optional[HourlyValue]:
        device = self.database.find_device(device_serial)
        if device is None:
            raise DeviceNotFound(device_serial)

        row = HourlyValue(
            device_serial=device_serial,
            space_id=device.space_id,
            hour_timestamp=floor_to_hour(self._clock()),
            avg_value=progress.hour_averages,
            sample_count=progress.sample_count,
        )
        try:
            return self.database.create_hourly_value(row)
        except Exception:
            logger.exception(
                "Failed to persist hourly value, dropping window",
                extra={"device_serial": device_serial, "sample_count": row.sample_count},
            )
            return None
