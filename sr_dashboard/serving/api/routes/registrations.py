"""
Registration API Endpoints

Platform-wide registrations split into SR-linked and direct.
"""

from typing import List

from fastapi import APIRouter, Depends

from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.analytics.queries import MetricFamily
from sr_dashboard.serving.api.auth import require_viewer
from sr_dashboard.serving.api.dependencies import AggregateReader, get_reader, window_dependency
from sr_dashboard.serving.api.schemas import RegistrationSource, RegistrationSummary, RegistrationTrend

router = APIRouter(dependencies=[Depends(require_viewer)])


@router.get("/registrations/summary", response_model=RegistrationSummary)
async def get_registration_summary(
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> RegistrationSummary:
    summary = await reader.first(MetricFamily.REGISTRATION_SUMMARY, window)
    return RegistrationSummary(**summary)


@router.get("/registrations/trends", response_model=List[RegistrationTrend])
async def get_registration_trends(
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[RegistrationTrend]:
    """Daily registrations, most recent day first"""
    rows = await reader.rows(MetricFamily.REGISTRATION_TRENDS, window)
    return [RegistrationTrend(**row) for row in rows]


@router.get("/registrations/sources", response_model=List[RegistrationSource])
async def get_registration_sources(
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[RegistrationSource]:
    """Registrations per source class with their share of the window total"""
    rows = await reader.rows(MetricFamily.REGISTRATION_SOURCES, window)
    return [RegistrationSource(**row) for row in rows]
