"""
Unit Tests - Export Rendering
"""
from datetime import date

from sr_dashboard.analytics.date_window import parse_range_token
from sr_dashboard.analytics.export import (
    ExportDetail,
    ExportFormat,
    export_filename,
    export_payload,
    rows_to_csv,
    rows_to_frame,
)

WINDOW = parse_range_token("custom:2025-08-10:2025-08-17")

DETAIL_ROWS = [
    {"sr_name": "Alice Mwangi", "sr_code": "SR0001", "order_id": None, "order_value": 0.0, "order_status": None},
    {"sr_name": "Alice Mwangi", "sr_code": "SR0001", "order_id": 7, "order_value": 17.25, "order_status": "delivered"},
]


class TestCsv:
    """Tests for CSV rendering"""

    def test_header_is_first_row_keys(self):
        lines = rows_to_csv(DETAIL_ROWS).splitlines()

        assert lines[0] == "sr_name,sr_code,order_id,order_value,order_status"
        assert lines[2] == "Alice Mwangi,SR0001,7,17.25,delivered"
        assert len(lines) == 3

    def test_null_leading_column_keeps_later_values(self):
        """Test a column whose first value is null is typed from the whole set"""
        frame = rows_to_frame(DETAIL_ROWS)

        assert frame["order_id"].to_list() == [None, 7]
        assert frame["order_status"].to_list() == [None, "delivered"]

    def test_empty_export(self):
        assert rows_to_csv([]) == ""


class TestEnvelope:
    """Tests for export naming and the JSON envelope"""

    def test_filename_names_the_resolved_window(self):
        assert export_filename(ExportDetail.DETAILED, WINDOW) == "sr_detailed_2025-08-10_2025-08-17.csv"
        assert export_filename(ExportDetail.SUMMARY, WINDOW, ExportFormat.JSON) == "sr_summary_2025-08-10_2025-08-17.json"

    def test_filename_for_all_time(self):
        name = export_filename("summary", parse_range_token("all"), "csv")

        assert name == f"sr_summary_{date.today().isoformat()}.csv"

    def test_payload(self):
        payload = export_payload(DETAIL_ROWS, ExportDetail.DETAILED, WINDOW)

        assert payload["detail"] == "detailed"
        assert payload["count"] == 2
        assert payload["window"]["start"] == "2025-08-10"
        assert payload["rows"] is DETAIL_ROWS
