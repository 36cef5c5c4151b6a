from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.factory import build_default_store
from logging_config import configure_logging
from services.ingestion import build_default_ingestion
from services.query import build_default_query_service
from transport.mqtt import build_default_transport


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # Opening the store raises StoreUnavailable, which aborts startup.
    store = build_default_store()
    transport = None
    try:
        ingestion = build_default_ingestion()
        transport = build_default_transport(handler=ingestion.handle_message)
        if transport is not None:
            transport.start()
        yield
    finally:
        if transport is not None:
            transport.stop()
        store.close()
        build_default_query_service.cache_clear()
        build_default_ingestion.cache_clear()
        build_default_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Soil Valve Hub",
        description="Sensor ingestion, rule-based valve control and reading export.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
