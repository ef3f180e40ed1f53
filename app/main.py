from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from app.api import router
from app.relay_ws import router as relay_router
from logging_config import configure_logging
from services.pipeline import TelemetryServices, build_default_services


def create_app(
    services: Optional[TelemetryServices] = None,
    serve_relay: Optional[bool] = None,
) -> FastAPI:
    """Build the application around one explicitly owned service container.

    ``serve_relay`` controls the standalone relay listener; it defaults to the
    ``RELAY_ENABLED`` setting. The ``/ws`` route is always available.
    """
    configure_logging()
    owned = services or build_default_services()
    start_relay = owned.settings.relay_enabled if serve_relay is None else serve_relay

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if start_relay:
            await owned.relay_server.start()
        try:
            yield
        finally:
            await owned.shutdown()

    app = FastAPI(
        title="Wind Tunnel Telemetry",
        description="Synthetic wind tunnel telemetry with session recording and a live relay.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = owned
    app.include_router(router)
    app.include_router(relay_router)
    return app


app = create_app()
