"""
Unit Tests - Metric Derivation
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from sr_dashboard.analytics.metrics import (
    FieldKind,
    FieldSpec,
    average,
    currency,
    date_field,
    day_name,
    derive_metrics,
    derive_rows,
    identifier,
    integer,
    mean,
    percent,
    percentage,
    round_half_up,
    status_field,
    text_field,
    to_float,
    to_int,
)
from sr_dashboard.analytics.queries import SALES_SUMMARY_FIELDS


class TestCoercion:
    """Tests for driver value coercion"""

    @pytest.mark.parametrize("value,expected", [
        (None, 0.0),
        ("", 0.0),
        ("abc", 0.0),
        ("12.5", 12.5),
        (Decimal("17.25"), 17.25),
        (3, 3.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        (True, 0.0),
    ])
    def test_to_float(self, value, expected):
        assert to_float(value) == expected

    def test_to_int(self):
        assert to_int("7") == 7
        assert to_int(Decimal("4")) == 4
        assert to_int(None) == 0
        assert to_int("seven") == 0

    def test_round_half_up(self):
        """Test halves round away from zero"""
        assert round_half_up(2.675, 2) == 2.68
        assert round_half_up(0.05, 1) == 0.1

    def test_percentage(self):
        assert percentage(1, 3) == 33.3
        assert percentage(2, 3, places=2) == 66.67
        assert percentage(1, 1) == 100.0

    @pytest.mark.parametrize("denominator", [0, None, "0", "abc"])
    def test_zero_denominator_is_zero(self, denominator):
        assert percentage(5, denominator) == 0.0
        assert mean(5, denominator) == 0.0


class TestFieldSpec:
    """Tests for field declarations"""

    def test_ratio_fields_need_both_operands(self):
        with pytest.raises(ValueError):
            FieldSpec("rate", FieldKind.PERCENT, numerator="a")

    def test_source_defaults_to_name(self):
        assert integer("total_orders").column == "total_orders"
        assert integer("orders", source="total_orders").column == "total_orders"


class TestDeriveMetrics:
    """Tests for row derivation"""

    def test_mixed_driver_types(self):
        fields = (
            integer("orders"),
            currency("value"),
            percent("rate", "orders", "customers"),
            average("avg", "value", "orders"),
            text_field("name"),
        )
        raw = {"orders": "3", "value": Decimal("10.50"), "customers": 4, "name": "Alice Mwangi"}

        result = derive_metrics(raw, fields)

        assert result == {"orders": 3, "value": 10.5, "rate": 75.0, "avg": 3.5, "name": "Alice Mwangi"}

    def test_missing_row_is_all_zero(self):
        result = derive_metrics(None, SALES_SUMMARY_FIELDS)

        assert result["total_orders"] == 0
        assert result["total_order_value"] == 0.0
        assert result["avg_order_value"] == 0.0
        assert result["sr_linked_percentage"] == 0.0
        assert all(value == 0 for value in result.values())

    def test_dates_and_day_names(self):
        fields = (date_field("date"), day_name("day_name", source="date"), date_field("joined"))
        raw = {"date": "2025-08-17", "joined": datetime(2025, 1, 5, 9, 0)}

        result = derive_metrics(raw, fields)

        assert result == {"date": "2025-08-17", "day_name": "Sunday", "joined": "2025-01-05"}

    def test_date_objects(self):
        assert derive_metrics({"d": date(2025, 8, 17)}, (date_field("d"),)) == {"d": "2025-08-17"}

    def test_identifier_keeps_null(self):
        fields = (identifier("order_id"),)

        assert derive_metrics({"order_id": None}, fields) == {"order_id": None}
        assert derive_metrics({"order_id": "12"}, fields) == {"order_id": 12}

    def test_status_codes_become_labels(self):
        fields = (status_field("status"),)

        assert derive_metrics({"status": "6"}, fields) == {"status": "delivered"}
        assert derive_metrics({"status": "99"}, fields) == {"status": None}
        assert derive_metrics({"status": None}, fields) == {"status": None}

    def test_text_keeps_null(self):
        assert derive_metrics({}, (text_field("email"),)) == {"email": None}

    def test_rows_share_keys(self):
        fields = (integer("a"), currency("b"))

        rows = derive_rows([{"a": 1}, {"b": "2.5"}, {}], fields)

        assert [list(row) for row in rows] == [["a", "b"]] * 3
        assert rows[1] == {"a": 0, "b": 2.5}
