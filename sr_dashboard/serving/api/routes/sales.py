"""
Sales API Endpoints

Fulfilled-order totals and averages, with the SR-linked share.
"""

from typing import List

from fastapi import APIRouter, Depends

from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.analytics.queries import MetricFamily
from sr_dashboard.serving.api.auth import require_viewer
from sr_dashboard.serving.api.dependencies import AggregateReader, get_reader, window_dependency
from sr_dashboard.serving.api.schemas import SalesSummary, SalesTrend

router = APIRouter(dependencies=[Depends(require_viewer)])


@router.get("/sales/summary", response_model=SalesSummary)
async def get_sales_summary(
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> SalesSummary:
    summary = await reader.first(MetricFamily.SALES_SUMMARY, window)
    return SalesSummary(**summary)


@router.get("/sales/trends", response_model=List[SalesTrend])
async def get_sales_trends(
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[SalesTrend]:
    """Daily sales, most recent day first"""
    rows = await reader.rows(MetricFamily.SALES_TRENDS, window)
    return [SalesTrend(**row) for row in rows]
