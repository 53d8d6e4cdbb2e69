"""
FastAPI Application Factory

Creates and configures the dashboard API application: middleware, routers
and the error responses for analytics failures.
"""

from typing import Any, Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from sr_dashboard.analytics.errors import AggregationError, InvalidRangeToken
from sr_dashboard.config import get_settings
from sr_dashboard.serving.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from sr_dashboard.serving.api.routes import (
    auth_router,
    dashboard_router,
    export_router,
    health_router,
    operations_router,
    referrers_router,
    registrations_router,
    sales_router,
)
from sr_dashboard.serving.api.schemas import ErrorResponse

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


async def invalid_range_token_handler(_: Request, exc: InvalidRangeToken) -> JSONResponse:
    body = ErrorResponse(
        error="invalid_range_token",
        message=exc.reason,
        token=None if exc.token is None else str(exc.token),
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


async def aggregation_error_handler(_: Request, exc: AggregationError) -> JSONResponse:
    # Already logged with full context where it was raised
    body = ErrorResponse(
        error="aggregation_failed",
        message="The data store could not produce this metric. Please retry.",
        family=exc.family,
        retryable=True,
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers={"Retry-After": "5"},
    )


def create_api_app(lifespan: Optional[Callable[[FastAPI], Any]] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan: Startup/shutdown context; tests build the app without one

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="SR Performance Dashboard API",
        description="Referrer performance, registrations, sales and operations metrics",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Date-Window", "X-Date-Window-Fallback", "X-Request-ID", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
        weighted_prefixes={f"{API_PREFIX}/export": settings.security.export_request_cost},
        trust_forwarded=settings.security.trust_forwarded_for,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(InvalidRangeToken, invalid_range_token_handler)
    app.add_exception_handler(AggregationError, aggregation_error_handler)

    app.include_router(health_router, prefix=API_PREFIX, tags=["Health"])
    app.include_router(auth_router, prefix=API_PREFIX, tags=["Auth"])
    app.include_router(dashboard_router, prefix=API_PREFIX, tags=["Dashboard"])
    app.include_router(referrers_router, prefix=API_PREFIX, tags=["SRs"])
    app.include_router(registrations_router, prefix=API_PREFIX, tags=["Registrations"])
    app.include_router(sales_router, prefix=API_PREFIX, tags=["Sales"])
    app.include_router(operations_router, prefix=API_PREFIX, tags=["Operations"])
    app.include_router(export_router, prefix=API_PREFIX, tags=["Export"])

    @app.get(f"{API_PREFIX}/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
