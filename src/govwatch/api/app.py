"""
FastAPI application factory.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..core.config.models import AppConfig
from ..core.orchestrator import Orchestrator, create_orchestrator
from .routes import logs, scrapers

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None,
    orchestrator: Orchestrator | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration (loaded from app.yaml when omitted)
        orchestrator: Pre-built orchestrator; its bus is closed on shutdown

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Admin API starting up")
        if orchestrator is not None:
            app.state.orchestrator = orchestrator
        else:
            from ..core.config.loader import load_app_config

            app.state.orchestrator = create_orchestrator(config or load_app_config())

        yield

        logger.info("Admin API shutting down")
        await app.state.orchestrator.wait_background()
        app.state.orchestrator.bus.close()

    app = FastAPI(
        title="GovWatch Admin API",
        description="Source configuration, manual runs and live session logs.",
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "scrapers", "description": "Source status, configuration and runs"},
            {"name": "logs", "description": "Session logs and live streams"},
        ],
    )

    app.include_router(logs.router, prefix="/api", tags=["logs"])
    app.include_router(scrapers.router, prefix="/api", tags=["scrapers"])

    return app
