"""
Application lifecycle events
Handles startup and shutdown tasks
"""

from fastapi import FastAPI
import logging
from contextlib import asynccontextmanager

from .database import init_db, close_db
from .logging import setup_logging
from .config import settings

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    Handles startup and shutdown events
    """
    from storefront.services.order_notification import order_notifications

    # Startup
    try:
        setup_logging()
        logger.info(f"Starting {settings.APP_NAME}...")

        # Tests create their own schema
        if settings.ENVIRONMENT != "test":
            await init_db()
            logger.info("Database initialized")

        logger.info(f"{settings.APP_NAME} started successfully")

        yield

    finally:
        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME}...")

        if order_notifications.pending:
            logger.info(f"Waiting for {order_notifications.pending} order confirmations")
        await order_notifications.join()

        await close_db()
        logger.info(f"{settings.APP_NAME} shutdown complete")
