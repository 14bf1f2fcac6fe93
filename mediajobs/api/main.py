"""
FastAPI application with assembled routers.

Initializes the FastAPI app, registers routers and middleware, and manages
the job lifecycle manager across startup and shutdown.

Dependencies: fastapi, uvicorn, mediajobs.api.routers, mediajobs.observability
System role: API entry point with router assembly and server launch
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mediajobs.api.deps.dependencies import get_service_cache
from mediajobs.boundary.db.create_tables import create_all_tables
from mediajobs.configs import get_settings
from mediajobs.observability.logger import configure_logging
from mediajobs.observability.middleware import (
    CorrelationMiddleware,
    RequestLoggingMiddleware,
)

from .routers import health_router, jobs_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup: logging, schema creation, recovery of interrupted jobs.
    Shutdown: cancel in-flight runs and wait for dispatches.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    await create_all_tables()

    cache = get_service_cache()
    manager = cache.lifecycle_manager
    if settings.jobs.fail_interrupted_on_startup:
        await manager.recover_interrupted()
    logger.info(
        "Media job service started",
        extra={"environment": settings.environment, "runner": settings.jobs.runner_backend},
    )

    yield

    await manager.shutdown()
    cache.clear()
    logger.info("Media job service stopped")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    app = FastAPI(
        title="Media Jobs API",
        description="Asynchronous media-processing job service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Total-Count", "X-Total-Pages", "X-Correlation-ID"],
    )

    # Add observability middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(jobs_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "mediajobs.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
