"""
Radio/TV Ingester - FastAPI Application

Runs the hot folder ingester in the background and exposes:
- Health of the scanner and the circuit breaker
- Ingest statistics
- A stop endpoint dropping a marker in the stop folder
"""

import os
import signal
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from app.api import health, status
from app.models.errors import IngestAborted
from app.utils.config import Settings, get_settings
from app.utils.helpers import configure_logging
from domains.radio_tv.ingester import Ingester, prepare_folders
from domains.radio_tv.scanner import FatalHandler

IngesterFactory = Callable[[Settings, FatalHandler], Ingester]


def terminate_process(error: IngestAborted):
    """Make uvicorn shut down as it does on SIGTERM."""
    logger.critical(f"Shutting down the service: {error}")
    os.kill(os.getpid(), signal.SIGTERM)


def default_ingester_factory(settings: Settings, on_fatal: FatalHandler) -> Ingester:
    return Ingester(settings, on_fatal=on_fatal)


def create_app(
    settings: Optional[Settings] = None,
    ingester_factory: Optional[IngesterFactory] = None,
    on_fatal: Optional[FatalHandler] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Settings to run with; defaults to the environment
        ingester_factory: Builds the ingester from settings and a fatal handler
        on_fatal: Called when the circuit breaker trips; defaults to terminating the process
    """
    settings = settings or get_settings()
    ingester_factory = ingester_factory or default_ingester_factory
    on_fatal = on_fatal or terminate_process

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(f"Starting {settings.api_title} v{settings.api_version}")

        prepare_folders(settings)
        ingester = ingester_factory(settings, on_fatal)
        ingester.log_configuration()
        ingester.start()
        app.state.ingester = ingester

        yield

        # Cleanup
        logger.info("Shutting down application...")
        ingester.stop()
        logger.success("Application shut down complete")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Hot folder ingester for Radio/TV program metadata",
        lifespan=lifespan
    )
    app.state.settings = settings

    # Exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.log_level == "DEBUG" else "An error occurred"
            }
        )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(status.router, tags=["Ingest"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
            "health": "/health"
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
