from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router
from app.errors import register_exception_handlers
from datastore.telemetry_store import build_default_store
from logging_config import configure_logging
from services.anchoring import build_default_anchor_service
from services.confirmations import build_default_confirmations
from services.geocoder import build_default_geocoder
from services.tracking import build_default_tracking


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    confirmations = build_default_confirmations()
    try:
        yield
    finally:
        # Pending background confirmations end with the process.
        confirmations.shutdown()
        build_default_confirmations.cache_clear()
        build_default_anchor_service.cache_clear()
        _close_http_clients()


def _close_http_clients() -> None:
    # Only clients that were actually built are closed.
    for factory in (build_default_store, build_default_geocoder):
        if factory.cache_info().currsize:
            factory().close()
        factory.cache_clear()
    build_default_tracking.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Shipment Telemetry Relay",
        description="Relays in-transit telemetry to the realtime store and anchors arrival summaries on chain.",
        version="0.1.0",
        lifespan=lifespan,
    )
    # Browser dashboards call the relay directly.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
