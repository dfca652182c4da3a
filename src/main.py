"""
Main entry point for the FastAPI application.
Configures lifespan events and mounts routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from src.api.routes import router as api_router
from src.config.settings import settings
from src.core.errors import StartupFailure
from src.services.node import node_service

# Setup Logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Disable these warnings as they are false positives caused by fasapi syntax
# pylint: disable=redefined-outer-name
# pylint: disable=unused-argument
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application Lifecycle Manager.
    Handles startup (node init if configured) and shutdown (departure notice).
    """
    logger.info("Starting relay node...")

    if settings.node_id:
        logger.info("Auto-initializing node: %s", settings.node_id)
        try:
            await node_service.initialize(settings.node_id)
        except StartupFailure as e:
            logger.critical("Startup failed: %s", e)
            raise

    yield

    logger.info("Shutting down relay node...")
    await node_service.shutdown()


def create_app() -> FastAPI:
    """Factory to create the app."""
    application = FastAPI(
        title=settings.app_name,
        description="Flooding publish/subscribe relay node",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Routers
    application.include_router(api_router, prefix="/api")

    return application


app = create_app()
