"""
Operations API Endpoints

Leaderboards and daily trends for delivery drivers, customer-service
representatives and packers.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.analytics.leaderboard import CSR_LEADERBOARD, DRIVER_LEADERBOARD, PACKING_LEADERBOARD
from sr_dashboard.analytics.queries import MetricFamily
from sr_dashboard.serving.api.auth import require_viewer
from sr_dashboard.serving.api.dependencies import AggregateReader, get_reader, window_dependency
from sr_dashboard.serving.api.schemas import (
    CsrEntry,
    CsrTrend,
    DriverEntry,
    DriverTrend,
    PackingEntry,
    PackingTrend,
)

router = APIRouter(dependencies=[Depends(require_viewer)])


# =============================================================================
# DRIVERS
# =============================================================================

@router.get("/drivers", response_model=List[DriverEntry])
async def get_drivers(
    sort_by: Optional[str] = Query("delivered", alias="sortBy"),
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[DriverEntry]:
    """Active drivers ranked by deliveries, success rate, volume or speed"""
    rows = await reader.rows(MetricFamily.DRIVER_PERFORMANCE, window)
    return [DriverEntry(**row) for row in DRIVER_LEADERBOARD.rank(rows, sort_by)]


@router.get("/drivers/trends", response_model=List[DriverTrend])
async def get_driver_trends(
    driver_id: Optional[int] = Query(None, alias="driverId"),
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[DriverTrend]:
    rows = await reader.rows(MetricFamily.DRIVER_TRENDS, window, operator_id=driver_id)
    return [DriverTrend(**row) for row in rows]


# =============================================================================
# CUSTOMER SERVICE
# =============================================================================

@router.get("/csr", response_model=List[CsrEntry])
async def get_csr(
    sort_by: Optional[str] = Query("interactions", alias="sortBy"),
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[CsrEntry]:
    rows = await reader.rows(MetricFamily.CSR_PERFORMANCE, window)
    return [CsrEntry(**row) for row in CSR_LEADERBOARD.rank(rows, sort_by)]


@router.get("/csr/trends", response_model=List[CsrTrend])
async def get_csr_trends(
    csr_id: Optional[int] = Query(None, alias="csrId"),
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[CsrTrend]:
    rows = await reader.rows(MetricFamily.CSR_TRENDS, window, operator_id=csr_id)
    return [CsrTrend(**row) for row in rows]


# =============================================================================
# PACKING
# =============================================================================

@router.get("/packing", response_model=List[PackingEntry])
async def get_packing(
    sort_by: Optional[str] = Query("packed", alias="sortBy"),
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[PackingEntry]:
    rows = await reader.rows(MetricFamily.PACKING_PERFORMANCE, window)
    return [PackingEntry(**row) for row in PACKING_LEADERBOARD.rank(rows, sort_by)]


@router.get("/packing/trends", response_model=List[PackingTrend])
async def get_packing_trends(
    packer_id: Optional[int] = Query(None, alias="packerId"),
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> List[PackingTrend]:
    rows = await reader.rows(MetricFamily.PACKING_TRENDS, window, operator_id=packer_id)
    return [PackingTrend(**row) for row in rows]
