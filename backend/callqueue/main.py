"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callqueue.api.v1 import router as api_v1_router
from callqueue.config import settings
from callqueue.db import async_session_maker, configure_broadcaster, dispose_engine
from callqueue.logging import setup_logging
from callqueue.services.events.publish_service import MercurePublishService
from callqueue.services.reset.engine import DailyResetEngine
from callqueue.utils.background_tasks import BackgroundTasks

# Configure logging before anything else
setup_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger.info("Starting call queue API", debug=settings.debug)

    bg_tasks = BackgroundTasks()
    configure_broadcaster(MercurePublishService(), bg_tasks)

    reset_engine = DailyResetEngine(async_session_maker)
    app.state.reset_engine = reset_engine
    if settings.scheduler_enabled:
        await reset_engine.start()
    else:
        logger.info("Daily reset scheduler disabled")

    yield

    # Shutdown
    logger.info("Shutting down call queue API")
    await reset_engine.stop()
    await bg_tasks.wait(timeout=10)
    await dispose_engine()
    logger.info("Database connections disposed")


app = FastAPI(
    title="Call Queue API",
    description="Ticket issuing, counter dispatch and daily reset",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_v1_router, prefix="/api/v1")
