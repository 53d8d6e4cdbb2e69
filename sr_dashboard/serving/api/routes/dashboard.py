"""
Dashboard API Endpoints

Headline numbers, daily trends and the SR leaderboard.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
import structlog

from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.analytics.leaderboard import SR_LEADERBOARD
from sr_dashboard.analytics.queries import MetricFamily, fold_dashboard_trends
from sr_dashboard.serving.api.auth import require_viewer
from sr_dashboard.serving.api.dependencies import AggregateReader, get_reader, window_dependency
from sr_dashboard.serving.api.schemas import DashboardSummary, DashboardTrendPoint, LeaderboardEntry

router = APIRouter(dependencies=[Depends(require_viewer)])
logger = structlog.get_logger(__name__)


@router.get("/dashboard/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    window: DateWindow = Depends(window_dependency("7d")),
    reader: AggregateReader = Depends(get_reader),
) -> DashboardSummary:
    """Registrations, paid fulfilled orders and active SR count for valid SRs"""
    summary = await reader.first(MetricFamily.DASHBOARD_SUMMARY, window)
    return DashboardSummary(**summary)


@router.get("/dashboard/trends", response_model=List[DashboardTrendPoint])
async def get_dashboard_trends(
    window: DateWindow = Depends(window_dependency("7d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[DashboardTrendPoint]:
    """Daily registrations, orders and revenue across valid SRs, oldest first"""
    activity = await reader.rows(MetricFamily.SR_DAILY_ACTIVITY, window)
    return [DashboardTrendPoint(**point) for point in fold_dashboard_trends(activity)]


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    sort_by: Optional[str] = Query("registrations", alias="sortBy"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    window: DateWindow = Depends(window_dependency("7d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[LeaderboardEntry]:
    """SR roster ranked by registrations, orders, revenue or conversion"""
    roster = await reader.rows(MetricFamily.SR_ROSTER, window)
    ranked = SR_LEADERBOARD.rank(roster, sort_by)
    if limit is not None:
        ranked = ranked[:limit]
    return [LeaderboardEntry(**row) for row in ranked]
