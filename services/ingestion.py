"""Ingestion boundary feeding samples to the rollup and automation engines."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.schemas import (
    BatchIngestResponse,
    BatchSample,
    BatchSampleResult,
    CurrentValue,
    DeviceCommand,
    SampleIngestResponse,
)
from datastore.mock_database import MockDeviceDatabase, build_default_database
from models.errors import DeviceNotFound
from services.aggregator import WindowAggregator
from services.automation import AutomationEngine, fields_to_current_value
from services.dispatcher import ActionDispatcher
from settings import get_settings
from storage.window_cache import CurrentValueStore, WindowCache, build_default_cache

logger = logging.getLogger(__name__)


@dataclass
class _DeviceRun:
    """One device's share of a batch chunk and where its results go."""

    serial: str
    future: Future[List[BatchSampleResult]]
    offset: int
    count: int


class IngestionService:
    """Hands every sample to both engines and runs batches on a worker pool."""

    def __init__(
        self,
        aggregator: WindowAggregator,
        automation: AutomationEngine,
        workers: int = 4,
        batch_size: int = 50,
        timeout: Optional[float] = 2.0,
    ) -> None:
        self.aggregator = aggregator
        self.automation = automation
        self.batch_size = batch_size
        self.timeout = timeout
        self.executor = ThreadPoolExecutor(max_workers=workers)

    @property
    def database(self) -> MockDeviceDatabase:
        return self.automation.database

    @property
    def current_values(self) -> CurrentValueStore:
        return self.automation.current_values

    @property
    def dispatcher(self) -> ActionDispatcher:
        return self.automation.dispatcher

    def ingest_sample(self, device_serial: str, fields: Mapping[str, Any]) -> SampleIngestResponse:
        """Evaluate automation for the sample, then fold it into the windows.

        Only ``DeviceNotFound`` from a closing hour escapes.
        """
        commands = self._run_automation(device_serial, fields)
        progress = self.aggregator.ingest(device_serial, fields)
        if progress is None:
            return SampleIngestResponse(
                device_serial=device_serial, accepted=False, commands=commands
            )
        return SampleIngestResponse(
            device_serial=device_serial,
            accepted=True,
            minute_count=progress.minute_count,
            minute_completed=progress.minute_completed,
            hour_count=progress.hour_count,
            hour_completed=progress.hour_completed,
            hourly_value=progress.hourly_value,
            commands=commands,
        )

    def update_current_value(
        self, device_id: str, current_value: CurrentValue
    ) -> List[DeviceCommand]:
        """Replace a device's current value and re-evaluate its links."""
        if self.database.get_device(device_id) is None:
            raise DeviceNotFound(device_id)
        return self._apply_current_value(device_id, current_value)

    def ingest_batch(self, samples: Sequence[BatchSample]) -> BatchIngestResponse:
        """Ingest many samples, ``batch_size`` at a time.

        Samples of one device stay in order on a single worker; distinct
        devices run in parallel. One failing sample never stops the others.

        Work that outlives its timeout is cancelled when it has not started
        and reported as failed. Work already running cannot be stopped: its
        samples are reported as pending, and the device's next chunk waits
        for it so later samples are never applied ahead of earlier ones.
        """
        results: List[BatchSampleResult] = []
        running: Dict[str, _DeviceRun] = {}
        for start in range(0, len(samples), self.batch_size):
            chunk = samples[start : start + self.batch_size]
            by_device: Dict[str, List[BatchSample]] = {}
            for sample in chunk:
                by_device.setdefault(sample.device_serial, []).append(sample)

            for serial in by_device:
                if serial in running:
                    self._settle(results, running.pop(serial), timeout=None)

            runs: List[_DeviceRun] = []
            for serial, device_samples in by_device.items():
                runs.append(
                    _DeviceRun(
                        serial=serial,
                        future=self.executor.submit(self._ingest_device_samples, device_samples),
                        offset=len(results),
                        count=len(device_samples),
                    )
                )
                results.extend(
                    BatchSampleResult(
                        device_serial=serial, ok=False, pending=True, reason="still running"
                    )
                    for _ in device_samples
                )
            for run in runs:
                if self._settle(results, run, timeout=self._batch_timeout(run.count)):
                    continue
                if run.future.cancel():
                    logger.error(
                        "Timed out waiting to ingest batch samples",
                        extra={"device_serial": run.serial, "reason": "timeout"},
                    )
                    results[run.offset : run.offset + run.count] = [
                        BatchSampleResult(device_serial=run.serial, ok=False, reason="timed out")
                        for _ in range(run.count)
                    ]
                    continue
                logger.warning(
                    "Batch samples still running after timeout",
                    extra={"device_serial": run.serial, "reason": "timeout"},
                )
                running[run.serial] = run

        for run in running.values():
            self._settle(results, run, timeout=0)

        processed = sum(1 for result in results if result.ok)
        pending = sum(1 for result in results if result.pending)
        return BatchIngestResponse(
            processed=processed,
            failed=len(results) - processed - pending,
            pending=pending,
            results=results,
        )

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _batch_timeout(self, count: int) -> Optional[float]:
        if self.timeout is None:
            return None
        return self.timeout * max(count, 1)

    @staticmethod
    def _settle(
        results: List[BatchSampleResult], run: _DeviceRun, timeout: Optional[float]
    ) -> bool:
        """Write ``run``'s outcomes over its placeholders once it finishes."""
        try:
            outcomes = run.future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        results[run.offset : run.offset + run.count] = outcomes
        return True

    def _ingest_device_samples(self, samples: List[BatchSample]) -> List[BatchSampleResult]:
        results: List[BatchSampleResult] = []
        for sample in samples:
            try:
                response = self.ingest_sample(sample.device_serial, sample.fields)
            except DeviceNotFound as exc:
                results.append(
                    BatchSampleResult(device_serial=sample.device_serial, ok=False, reason=str(exc))
                )
                continue
            except Exception as exc:  # noqa: BLE001 - one sample must not sink the batch
                logger.exception(
                    "Unexpected failure ingesting sample",
                    extra={"device_serial": sample.device_serial},
                )
                results.append(
                    BatchSampleResult(device_serial=sample.device_serial, ok=False, reason=str(exc))
                )
                continue
            results.append(
                BatchSampleResult(
                    device_serial=sample.device_serial,
                    ok=response.accepted,
                    reason=None if response.accepted else "no usable readings",
                    minute_completed=response.minute_completed,
                    hour_completed=response.hour_completed,
                )
            )
        return results

    def _run_automation(
        self, device_serial: str, fields: Mapping[str, Any]
    ) -> List[DeviceCommand]:
        try:
            device = self.database.find_device(device_serial)
            if device is None:
                return []
            current_value = fields_to_current_value(fields)
            if not current_value:
                return []
            return self._apply_current_value(device.device_id, current_value)
        except Exception:
            logger.exception(
                "Automation failed for sample", extra={"device_serial": device_serial}
            )
            return []

    def _apply_current_value(
        self, device_id: str, current_value: CurrentValue
    ) -> List[DeviceCommand]:
        key = CurrentValueStore.key_for(device_id)
        with self.current_values.cache.transaction(key, timeout=self.timeout):
            self.current_values.put(device_id, current_value)
            return self.automation.on_value_change(device_id, current_value)


def build_ingestion_service(
    cache: WindowCache,
    database: MockDeviceDatabase,
    dispatcher: Optional[ActionDispatcher] = None,
    workers: Optional[int] = None,
) -> IngestionService:
    """Wire both engines over the given stores using current settings."""
    settings = get_settings()
    aggregator = WindowAggregator(
        cache=cache,
        database=database,
        samples_per_minute=settings.samples_per_minute,
        minutes_per_hour=settings.minutes_per_hour,
        minute_ttl=settings.minute_ttl_seconds,
        hour_ttl=settings.hour_ttl_seconds,
        retry_attempts=settings.store_retry_attempts,
        retry_delay=settings.store_retry_delay,
        store_timeout=settings.store_timeout,
    )
    automation = AutomationEngine(
        database=database,
        current_values=CurrentValueStore(cache),
        dispatcher=dispatcher or ActionDispatcher(),
    )
    return IngestionService(
        aggregator=aggregator,
        automation=automation,
        workers=workers or settings.ingest_workers,
        batch_size=settings.ingest_batch_size,
        timeout=settings.store_timeout,
    )


@lru_cache
def build_default_ingestion(workers: Optional[int] = None) -> IngestionService:
    """Factory that wires the ingestion service with the default stores."""
    return build_ingestion_service(
        cache=build_default_cache(),
        database=build_default_database(),
        workers=workers,
    )
