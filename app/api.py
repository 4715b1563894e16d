"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.schemas import (
    BatchIngestRequest,
    BatchIngestResponse,
    Component,
    CurrentValueResponse,
    DeviceCommand,
    HourlyValue,
    SampleIngestResponse,
    StatisticsBucket,
    StatisticsPeriod,
)
from models.errors import DeviceNotFound, TransientStoreError
from services.ingestion import IngestionService, build_default_ingestion
from services.statistics import summarize_hourly_values

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


# Handlers that wait on cache keys are plain functions so they run in the
# threadpool and never hold up the event loop.
@router.post(
    "/devices/{device_serial}/samples",
    response_model=SampleIngestResponse,
    summary="Ingest one sensor sample for a device.",
)
def ingest_sample(
    device_serial: str,
    fields: Dict[str, Any] = Body(..., description="Reading name to numeric value."),
    ingestion: IngestionService = Depends(get_ingestion),
) -> SampleIngestResponse:
    try:
        return ingestion.ingest_sample(device_serial, fields)
    except DeviceNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post(
    "/samples/batch",
    response_model=BatchIngestResponse,
    summary="Ingest samples for many devices at once.",
)
def ingest_batch(
    payload: BatchIngestRequest,
    ingestion: IngestionService = Depends(get_ingestion),
) -> BatchIngestResponse:
    return ingestion.ingest_batch(payload.samples)


@router.put(
    "/devices/{device_id}/current-value",
    response_model=CurrentValueResponse,
    summary="Replace a device's current value and evaluate its automation links.",
)
def put_current_value(
    device_id: str,
    components: List[Component] = Body(...),
    ingestion: IngestionService = Depends(get_ingestion),
) -> CurrentValueResponse:
    try:
        commands = ingestion.update_current_value(device_id, components)
    except DeviceNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except TransientStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return CurrentValueResponse(device_id=device_id, commands=commands)


@router.get(
    "/devices/{device_serial}/hourly-values",
    response_model=List[HourlyValue],
    summary="List stored hourly summaries for a device.",
)
async def list_hourly_values(
    device_serial: str,
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(24, ge=1, le=500),
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[HourlyValue]:
    if ingestion.database.find_device(device_serial) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(DeviceNotFound(device_serial)),
        )
    rows = ingestion.database.list_hourly_values(device_serial, start_time, end_time)
    offset = (page - 1) * limit
    return rows[offset : offset + limit]


@router.get(
    "/devices/{device_serial}/statistics",
    response_model=List[StatisticsBucket],
    summary="Average hourly summaries per day, week, month or year.",
)
async def get_statistics(
    device_serial: str,
    period: StatisticsPeriod = Query(StatisticsPeriod.daily),
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[StatisticsBucket]:
    if ingestion.database.find_device(device_serial) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(DeviceNotFound(device_serial)),
        )
    rows = ingestion.database.list_hourly_values(device_serial, start_time, end_time)
    return summarize_hourly_values(rows, period)


@router.get(
    "/commands",
    response_model=List[DeviceCommand],
    summary="Most recently dispatched device commands.",
)
async def list_commands(
    limit: int = Query(50, ge=1, le=1000),
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[DeviceCommand]:
    return ingestion.dispatcher.recent(limit)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
