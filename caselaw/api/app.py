"""FastAPI application factory and lifespan management.

create_app() builds the configured application: logging, middleware,
exception handlers and routes. The lifespan wires the orchestrator and
indexes the local archive in a worker thread before serving.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from caselaw.api.dependencies import get_settings
from caselaw.api.middleware import RequestTracingMiddleware, register_exception_handlers
from caselaw.api.routes import api_router
from caselaw.core.config import Settings
from caselaw.core.logging import setup_logging
from caselaw.services.search.orchestrator import UnifiedOrchestrator

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the orchestrator on startup, close its HTTP clients on shutdown."""
    settings: Settings = app.state.settings
    logger.info("application_starting", version=APP_VERSION, debug=settings.debug)

    orchestrator = UnifiedOrchestrator.from_settings(settings)
    app.state.orchestrator = orchestrator
    case_count = await orchestrator.load_local_archive()
    logger.info("local_archive_ready", cases=case_count)

    try:
        yield
    finally:
        logger.info("application_shutting_down")
        await orchestrator.aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return a fully configured FastAPI application."""
    if settings is None:
        settings = get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="Unified Case-Law Search",
        description="Federated case-law search over a local archive, CourtListener "
        "and the Caselaw Access Project",
        version=APP_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings

    app.add_middleware(RequestTracingMiddleware)

    register_exception_handlers(app)

    app.include_router(api_router, prefix=settings.api_prefix)

    return app
