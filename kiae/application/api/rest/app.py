import logging
from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry

from kiae.application.api.rest.routes import health, metrics
from kiae.application.di import create_container
from kiae.application.runtime import ExporterRuntime
from kiae.config import Config, configure_logging

logger = logging.getLogger(__name__)


def create_app(config: Config | None = None) -> FastAPI:
    """Create the exporter's FastAPI application.

    The lifespan builds the DI container, starts the runtime (cluster source,
    check passes, GC), and tears everything down on shutdown.
    """
    # Pydantic Settings populates from env vars at runtime
    config = config or Config()  # type: ignore[call-arg]

    # Configure logging early
    configure_logging(config.logging)
    logger.info("Starting %s v%s", config.server.name, config.server.version)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = create_container(config)
        try:
            app.state.collector_registry = await container.get(CollectorRegistry)
            runtime = await container.get(ExporterRuntime)
            app.state.runtime = runtime
            async with runtime:
                yield
        finally:
            await container.close()

    app_instance = FastAPI(
        title=config.server.name,
        version=config.server.version,
        lifespan=lifespan,
    )

    # Traces for scrapes and registry calls; exported only when a token is set
    logfire.instrument_httpx()
    logfire.instrument_fastapi(app_instance)

    app_instance.include_router(metrics.router)
    app_instance.include_router(health.router)

    # Global exception handler - logs all unhandled exceptions
    @app_instance.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app_instance
