"""
Export API Endpoint

Admin-only download of SR performance rows as CSV or JSON.
"""

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
import structlog

from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.analytics.export import (
    ExportDetail,
    ExportFormat,
    export_filename,
    export_payload,
    rows_to_csv,
)
from sr_dashboard.analytics.queries import MetricFamily
from sr_dashboard.serving.api.auth import require_admin
from sr_dashboard.serving.api.dependencies import AggregateReader, get_reader, window_dependency

router = APIRouter(dependencies=[Depends(require_admin)])
logger = structlog.get_logger(__name__)

EXPORT_FAMILIES = {
    ExportDetail.DETAILED: MetricFamily.EXPORT_DETAIL,
    ExportDetail.SUMMARY: MetricFamily.SR_ROSTER,
}


@router.get("/export")
async def export_data(
    fmt: ExportFormat = Query(ExportFormat.CSV, alias="format"),
    detail: ExportDetail = Query(ExportDetail.DETAILED),
    window: DateWindow = Depends(window_dependency("30d")),
    reader: AggregateReader = Depends(get_reader),
) -> Response:
    """
    Export detailed (one row per customer order) or summary (SR roster) rows.

    Every row carries the same keys, so the CSV header is the first row's keys.
    """
    rows = await reader.rows(EXPORT_FAMILIES[detail], window)
    logger.info("Export generated", detail=detail.value, format=fmt.value, rows=len(rows))

    filename = export_filename(detail, window, fmt)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}

    if fmt == ExportFormat.CSV:
        return Response(content=rows_to_csv(rows), media_type="text/csv", headers=headers)
    return JSONResponse(content=export_payload(rows, detail, window), headers=headers)
