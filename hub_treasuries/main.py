"""FastAPI application entry point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from hub_treasuries import __version__
from hub_treasuries.api.v1 import router as api_router
from hub_treasuries.core.bus import close_redis
from hub_treasuries.core.config import get_settings
from hub_treasuries.core.database import close_db, init_db
from hub_treasuries.core.logging_config import configure_logging
from hub_treasuries.core.worker import start_worker, stop_worker
from hub_treasuries.services.custody import close_fireblocks_client, get_fireblocks_client
from hub_treasuries.services.solana_rpc import close_solana_rpc

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    # Startup
    logger.info(
        "Starting hub-treasuries",
        version=__version__,
        environment=settings.environment,
        test_mode=settings.fireblocks_test_mode,
    )

    await init_db()
    logger.info("Database initialized")

    # Fail fast on a missing or unreadable signing key
    get_fireblocks_client()

    if settings.enable_consumer:
        start_worker()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await stop_worker()
    await close_fireblocks_client()
    await close_solana_rpc()
    await close_redis()
    await close_db()
    logger.info("Cleanup complete")


# Create FastAPI app
app = FastAPI(
    title="Hub Treasuries",
    description="Vault provisioning and custody signing for Solana and Polygon projects",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Include API router
app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "hub-treasuries",
        "version": __version__,
        "docs": "/api/docs",
        "health": "/api/v1/health",
    }
