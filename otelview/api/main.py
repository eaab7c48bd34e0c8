"""
otelview Application
=====================

FastAPI app exposing the ingestion driver's snapshot.

The consumer is started lazily by the first dashboard poll, as the
broker may be unreachable at boot; the lifespan only builds the driver
and stops it on shutdown.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from otelview.core.config import Settings, get_settings
from otelview.core.exceptions import OtelViewError
from otelview.infra.telemetry import get_logger, get_metrics, setup_logging
from otelview.ingest import IngestionDriver

from .routes import health_router, telemetry_router

logger = get_logger(__name__)


async def otelview_exception_handler(request, exc: OtelViewError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    settings: Settings | None = None,
    *,
    driver: IngestionDriver | None = None,
) -> FastAPI:
    """Build the application; ``driver`` overrides the default Kafka-backed one."""
    settings = settings or get_settings()
    setup_logging(
        level=settings.LOG_LEVEL,
        json_output=settings.LOG_JSON,
        environment=settings.ENVIRONMENT,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.driver = driver or IngestionDriver(settings, metrics=app.state.metrics)
        logger.info(
            "app_started",
            app=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
        )
        try:
            yield
        finally:
            await app.state.driver.stop()
            logger.info("app_stopped", app=settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Live OTLP trace and log view fed from Kafka",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = driver.metrics if driver is not None else get_metrics()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_exception_handler(OtelViewError, otelview_exception_handler)

    app.include_router(health_router)
    app.include_router(telemetry_router)
    return app


__all__ = ["create_app"]
