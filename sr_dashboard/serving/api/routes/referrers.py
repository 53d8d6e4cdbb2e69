"""
SR API Endpoints

Roster of valid SRs and per-SR profiles.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.analytics.queries import MetricFamily, fold_daily_data
from sr_dashboard.serving.api.auth import require_viewer
from sr_dashboard.serving.api.dependencies import AggregateReader, get_reader, window_dependency
from sr_dashboard.serving.api.schemas import SrProfile, SrRosterEntry

router = APIRouter(dependencies=[Depends(require_viewer)])
logger = structlog.get_logger(__name__)


@router.get("/srs", response_model=List[SrRosterEntry])
async def list_srs(
    window: DateWindow = Depends(window_dependency("all")),
    reader: AggregateReader = Depends(get_reader),
) -> List[SrRosterEntry]:
    """All valid SRs with customers registered in the window"""
    roster = await reader.rows(MetricFamily.SR_ROSTER, window)
    return [SrRosterEntry(**row) for row in roster]


@router.get("/srs/{sr_id}", response_model=SrProfile)
async def get_sr(
    sr_id: str,
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> SrProfile:
    """
    One SR by numeric id or referral code, with daily activity for the window.
    """
    sr = None
    if sr_id.isdigit():
        sr = await reader.first(MetricFamily.SR_ROSTER, window, referrer_id=int(sr_id))
    if sr is None:
        sr = await reader.first(MetricFamily.SR_ROSTER, window, referral_code=sr_id)
    if sr is None:
        logger.info("SR not found", sr_id=sr_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="SR not found")

    activity = await reader.rows(
        MetricFamily.SR_DAILY_ACTIVITY,
        window,
        referral_code=sr["referral_code"],
    )
    return SrProfile(**sr, daily_data=fold_daily_data(activity, sr["referral_code"]))
