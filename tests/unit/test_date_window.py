"""
Unit Tests - Date Window Resolution
"""
from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import column

from sr_dashboard.analytics.date_window import (
    WindowKind,
    parse_range_token,
    resolve_date_window,
    shift_months,
)
from sr_dashboard.analytics.errors import InvalidRangeToken

NOW = datetime(2025, 8, 17, 15, 30)


class TestRelativeTokens:
    """Tests for relative window tokens"""

    @pytest.mark.parametrize("token,start", [
        ("today", date(2025, 8, 17)),
        ("7d", date(2025, 8, 11)),
        ("30d", date(2025, 7, 19)),
        ("3m", date(2025, 5, 17)),
        ("6m", date(2025, 2, 17)),
        ("1y", date(2024, 8, 17)),
    ])
    def test_windows_end_today(self, token, start):
        window = parse_range_token(token, now=NOW)

        assert window.start == start
        assert window.end == date(2025, 8, 17)
        assert not window.fallback

    def test_yesterday(self):
        window = parse_range_token("yesterday", now=NOW)

        assert window.start == window.end == date(2025, 8, 16)
        assert window.days() == 1

    def test_seven_days_is_inclusive(self):
        assert parse_range_token("7d", now=NOW).days() == 7

    def test_bounds_cover_whole_days(self):
        """Test the window runs from midnight to the last instant of the end day"""
        start, end = parse_range_token("today", now=NOW).bounds()

        assert start == datetime(2025, 8, 17, 0, 0, 0)
        assert end == datetime.combine(date(2025, 8, 17), time.max)

    def test_all_time_is_unbounded(self):
        window = parse_range_token("all", now=NOW)

        assert window.kind == WindowKind.ALL_TIME
        assert window.is_unbounded
        assert window.bounds() is None
        assert window.days() == 0
        assert window.cache_key() == "all"

    def test_timezone_decides_the_calendar_day(self):
        """Test an aware instant is converted before taking today's date"""
        late_utc = datetime(2025, 8, 17, 23, 30, tzinfo=timezone.utc)

        window = parse_range_token("today", now=late_utc, timezone="Africa/Nairobi")

        assert window.start == date(2025, 8, 18)

    def test_unknown_timezone_is_rejected(self):
        with pytest.raises(ValueError):
            parse_range_token("7d", now=NOW, timezone="Mars/Olympus")


class TestCustomTokens:
    """Tests for custom:<start>:<end> tokens"""

    def test_single_day(self):
        window = parse_range_token("custom:2025-08-17:2025-08-17", now=NOW)

        assert window.kind == WindowKind.CUSTOM
        assert window.start == window.end == date(2025, 8, 17)
        assert window.cache_key() == "2025-08-17:2025-08-17"

    @pytest.mark.parametrize("token", [
        "custom:2025-08-17",
        "custom",
        "custom:2025-08-17:",
        "custom::2025-08-17",
        "custom:2025-13-01:2025-08-17",
        "custom:2025-08-17:2025-08-17:extra",
    ])
    def test_malformed_tokens_fail(self, token):
        with pytest.raises(InvalidRangeToken) as exc_info:
            parse_range_token(token, now=NOW)

        assert exc_info.value.token == token

    def test_reversed_range_fails(self):
        with pytest.raises(InvalidRangeToken, match="after end"):
            parse_range_token("custom:2025-08-18:2025-08-17", now=NOW)

    def test_invalid_token_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_range_token("custom:nope:2025-08-17", now=NOW)


class TestFallback:
    """Tests for unrecognized tokens"""

    def test_unrecognized_token_falls_back_to_seven_days(self):
        window = parse_range_token("fortnight", now=NOW)

        assert window.fallback
        assert window.token == "fortnight"
        assert window.start == date(2025, 8, 11)
        assert window.end == date(2025, 8, 17)

    def test_strict_mode_rejects_unrecognized_token(self):
        with pytest.raises(InvalidRangeToken):
            parse_range_token("fortnight", now=NOW, strict=True)

    def test_missing_token_fails(self):
        with pytest.raises(InvalidRangeToken):
            parse_range_token(None, now=NOW)


class TestPredicates:
    """Tests for SQL rendering of windows"""

    def test_inline_predicate_uses_named_binds(self):
        predicate = resolve_date_window("today", "u.created_at", now=NOW)

        assert predicate.predicate == "u.created_at BETWEEN :window_start AND :window_end"
        assert predicate.params["window_start"] == datetime(2025, 8, 17)
        assert predicate.params["window_end"].date() == date(2025, 8, 17)

    def test_prefix_keeps_bind_names_apart(self):
        window = parse_range_token("7d", now=NOW)

        predicate = window.predicate("o.created_at", prefix="orders_")

        assert set(predicate.params) == {"orders_window_start", "orders_window_end"}

    def test_unbounded_predicate_is_empty(self):
        predicate = resolve_date_window("all", "u.created_at", now=NOW)

        assert predicate.is_unbounded
        assert predicate.params == {}

    def test_clause_renders_between(self):
        clause = parse_range_token("today", now=NOW).clause(column("created_at"))

        assert "BETWEEN" in str(clause)

    def test_unbounded_clause_is_true(self):
        clause = parse_range_token("all", now=NOW).clause(column("created_at"))

        assert str(clause) == "true"


class TestShiftMonths:
    """Tests for calendar month arithmetic"""

    def test_clamps_to_month_end(self):
        assert shift_months(date(2025, 5, 31), -3) == date(2025, 2, 28)

    def test_crosses_year_boundary(self):
        assert shift_months(date(2025, 1, 15), -1) == date(2024, 12, 15)

    def test_leap_day(self):
        assert shift_months(date(2024, 2, 29), -12) == date(2023, 2, 28)
