from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.ingestion import build_default_ingestion


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    ingestion = build_default_ingestion()
    try:
        yield
    finally:
        ingestion.shutdown()
        build_default_ingestion.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Device Rollup Service",
        description="Hourly sensor rollups and device-link automation for connected homes.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
