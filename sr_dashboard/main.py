"""
FastAPI Production Application

Main entry point for the SR Performance Dashboard API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from sr_dashboard.config import get_settings
from sr_dashboard.config.logging import configure_logging
from sr_dashboard.database.connection import init_database, close_database
from sr_dashboard.serving.api.main import create_api_app
from sr_dashboard.serving.cache import init_redis, close_redis

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.monitoring.log_level)

    dashboard = settings.dashboard
    logger.info(
        "Starting SR Performance Dashboard API",
        environment=settings.app_env,
        timezone=dashboard.timezone or "server-local",
        strict_range_tokens=dashboard.strict_range_tokens,
        case_insensitive_test_filter=dashboard.case_insensitive_test_filter,
        query_timeout_seconds=dashboard.query_timeout_seconds,
        auth_enabled=settings.security.auth_enabled,
    )

    # A missing store surfaces per request as aggregation_failed, not as a crash
    try:
        await init_database()
    except Exception as e:
        logger.warning("Database init failed", error=str(e), error_type=type(e).__name__)

    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis init failed, caching bypassed", error=str(e), error_type=type(e).__name__)

    yield

    logger.info("Shutting down...")
    await close_database()
    await close_redis()


app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
