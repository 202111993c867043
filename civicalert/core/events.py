"""
Application lifecycle events
Handles startup and shutdown tasks
"""

from fastapi import FastAPI
import logging
from contextlib import asynccontextmanager

from .database import init_db, close_db
from .monitoring import setup_logging
from .config import settings

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    Handles startup and shutdown events
    """
    try:
        setup_logging()
        logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}...")

        # Tests create their own schema
        if settings.ENVIRONMENT != "test":
            await init_db()
            logger.info("Database initialized")

        if settings.push_enabled:
            logger.info("Web Push configured")
        else:
            logger.warning("VAPID keys not set; push deliveries will fail until configured")

        yield

    finally:
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await close_db()
        logger.info("Shutdown complete")
