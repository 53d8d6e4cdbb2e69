"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Response
from pydantic import BaseModel

from sr_dashboard.analytics.date_window import local_today
from sr_dashboard.config import get_settings
from sr_dashboard.database.connection import check_database_health, missing_tables
from sr_dashboard.database.models import Base
from sr_dashboard.serving.cache import check_redis_health

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


def calendar_check() -> Dict[str, Any]:
    """Calendar day the date windows currently resolve against"""
    dashboard = get_settings().dashboard
    return {
        "status": "healthy",
        "timezone": dashboard.timezone or "server-local",
        "today": local_today(dashboard.timezone).isoformat(),
        "strict_range_tokens": dashboard.strict_range_tokens,
    }


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Comprehensive health check endpoint.

    The database is critical; a failing cache only degrades the service.
    """
    settings = get_settings()
    checks = {
        "database": await check_database_health(),
        "redis": await check_redis_health(),
        "calendar": calendar_check(),
    }

    overall_status = "healthy"
    if checks["database"].get("status") != "healthy":
        overall_status = "unhealthy"
    elif checks["redis"].get("status") == "unhealthy":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe: 200 while the process is serving."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """Readiness probe: 503 until the database answers and carries the dashboard tables."""
    db_health = await check_database_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    missing = await missing_tables(Base.metadata.tables)
    if missing:
        response.status_code = 503
        return {"status": "not_ready", "reason": "schema_incomplete", "missing": ", ".join(missing)}
    return {"status": "ready"}
