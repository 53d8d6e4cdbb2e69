"""
Export Rendering

Flat roster/detail rows to CSV through polars. Rows come from MetricDeriver,
so every row carries the same key set and the header is the first row's keys.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence

import polars as pl

from sr_dashboard.analytics.date_window import DateWindow


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class ExportDetail(str, Enum):
    SUMMARY = "summary"
    DETAILED = "detailed"


def rows_to_frame(rows: Sequence[Mapping[str, Any]]) -> pl.DataFrame:
    """Build a frame with every column typed from the whole row set"""
    if not rows:
        return pl.DataFrame()
    columns = list(rows[0].keys())
    return pl.DataFrame(
        [dict(row) for row in rows],
        schema=columns,
        infer_schema_length=None,
    )


def rows_to_csv(rows: Sequence[Mapping[str, Any]]) -> str:
    """CSV text with a header row; empty input renders as an empty document"""
    if not rows:
        return ""
    return rows_to_frame(rows).write_csv()


def export_filename(detail: ExportDetail, window: DateWindow, fmt: ExportFormat = ExportFormat.CSV) -> str:
    stamp = date.today().isoformat() if window.is_unbounded else window.cache_key().replace(":", "_")
    return f"sr_{ExportDetail(detail).value}_{stamp}.{ExportFormat(fmt).value}"


def export_payload(rows: List[Dict[str, Any]], detail: ExportDetail, window: DateWindow) -> Dict[str, Any]:
    """JSON export envelope"""
    return {
        "detail": ExportDetail(detail).value,
        "window": window.describe(),
        "count": len(rows),
        "rows": rows,
    }
