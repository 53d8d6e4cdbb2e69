"""
Date Window Resolution

Turns a symbolic range token into a bounded window of whole local calendar
days. A window renders either as a bound SQLAlchemy clause or as an inline SQL
predicate with named bind parameters; both are built from the same bounds.

Token vocabulary:
    today | yesterday | 7d | 30d | 3m | 6m | 1y | all | custom:<YYYY-MM-DD>:<YYYY-MM-DD>
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy import true
from sqlalchemy.sql.elements import ColumnElement

from sr_dashboard.analytics.errors import InvalidRangeToken

logger = structlog.get_logger(__name__)

DEFAULT_TOKEN = "7d"
CUSTOM_PREFIX = "custom"

START_PARAM = "window_start"
END_PARAM = "window_end"


class WindowKind(str, Enum):
    """Recognized window kinds"""
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7 = "7d"
    LAST_30 = "30d"
    LAST_3_MONTHS = "3m"
    LAST_6_MONTHS = "6m"
    LAST_YEAR = "1y"
    ALL_TIME = "all"
    CUSTOM = "custom"


@dataclass(frozen=True)
class SqlPredicate:
    """Inline SQL predicate bound to a named column"""
    predicate: str
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_unbounded(self) -> bool:
        return not self.predicate


@dataclass(frozen=True)
class DateWindow:
    """
    Resolved date window.

    start/end are calendar dates (inclusive). Both are None only for ALL_TIME.
    fallback is True when an unrecognized token was coerced to the 7d window.
    """
    kind: WindowKind
    token: str
    start: Optional[date] = None
    end: Optional[date] = None
    fallback: bool = False

    @property
    def is_unbounded(self) -> bool:
        return self.kind == WindowKind.ALL_TIME

    def bounds(self) -> Optional[Tuple[datetime, datetime]]:
        """Timestamp bounds: 00:00:00 of start through the last instant of end"""
        if self.is_unbounded:
            return None
        return (
            datetime.combine(self.start, time.min),
            datetime.combine(self.end, time.max),
        )

    def days(self) -> int:
        """Number of calendar days covered, 0 for an unbounded window"""
        if self.is_unbounded:
            return 0
        return (self.end - self.start).days + 1

    def clause(self, column: ColumnElement) -> ColumnElement:
        """SQLAlchemy BETWEEN clause on column, or TRUE when unbounded"""
        bounds = self.bounds()
        if bounds is None:
            return true()
        return column.between(*bounds)

    def predicate(self, column: str, prefix: str = "") -> SqlPredicate:
        """
        Inline SQL predicate for text() queries.

        Args:
            column: Column reference, e.g. "u.created_at"
            prefix: Bind-name prefix, needed when one statement filters twice
        """
        bounds = self.bounds()
        if bounds is None:
            return SqlPredicate(predicate="", params={})
        start_name = f"{prefix}{START_PARAM}"
        end_name = f"{prefix}{END_PARAM}"
        return SqlPredicate(
            predicate=f"{column} BETWEEN :{start_name} AND :{end_name}",
            params={start_name: bounds[0], end_name: bounds[1]},
        )

    def cache_key(self) -> str:
        """Stable key naming the resolved bounds, not the relative token"""
        if self.is_unbounded:
            return "all"
        return f"{self.start.isoformat()}:{self.end.isoformat()}"

    def describe(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "kind": self.kind.value,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "fallback": self.fallback,
        }


def local_today(timezone: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """
    Current calendar day in the configured timezone.

    An empty timezone means the server's local calendar. An aware `now` is
    converted; a naive `now` is taken as already local.
    """
    tz = _zone(timezone)
    if now is None:
        now = datetime.now(tz) if tz else datetime.now()
    elif tz is not None and now.tzinfo is not None:
        now = now.astimezone(tz)
    return now.date()


def shift_months(value: date, months: int) -> date:
    """Calendar month arithmetic, clamping the day to the target month's length"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_range_token(
    token: Optional[str],
    now: Optional[datetime] = None,
    timezone: Optional[str] = None,
    strict: bool = False,
) -> DateWindow:
    """
    Resolve a range token into a DateWindow.

    Args:
        token: Range token from the caller
        now: Reference instant (defaults to the current time)
        timezone: IANA zone for calendar days; empty/None means server local
        strict: Reject unrecognized tokens instead of falling back to 7d

    Raises:
        InvalidRangeToken: Malformed custom token, or unrecognized token in strict mode
    """
    if token is None:
        raise InvalidRangeToken(token, "a range token is required")

    raw = token.strip()
    today = local_today(timezone, now)

    if raw == WindowKind.ALL_TIME.value:
        return DateWindow(kind=WindowKind.ALL_TIME, token=raw)

    if raw == CUSTOM_PREFIX or raw.startswith(f"{CUSTOM_PREFIX}:"):
        return _parse_custom(raw)

    relative = _relative_window(raw, today)
    if relative is not None:
        return relative

    if strict:
        raise InvalidRangeToken(token, "unrecognized range token")

    logger.warning("range_token_fallback", token=token, fallback=DEFAULT_TOKEN)
    window = _relative_window(DEFAULT_TOKEN, today)
    return DateWindow(
        kind=window.kind,
        token=raw,
        start=window.start,
        end=window.end,
        fallback=True,
    )


def resolve_date_window(
    token: Optional[str],
    column: str,
    now: Optional[datetime] = None,
    timezone: Optional[str] = None,
    strict: bool = False,
) -> SqlPredicate:
    """Resolve a token straight to an inline predicate on column"""
    return parse_range_token(token, now=now, timezone=timezone, strict=strict).predicate(column)


def _relative_window(token: str, today: date) -> Optional[DateWindow]:
    if token == WindowKind.TODAY.value:
        return DateWindow(WindowKind.TODAY, token, today, today)
    if token == WindowKind.YESTERDAY.value:
        yesterday = today - timedelta(days=1)
        return DateWindow(WindowKind.YESTERDAY, token, yesterday, yesterday)
    if token == WindowKind.LAST_7.value:
        return DateWindow(WindowKind.LAST_7, token, today - timedelta(days=6), today)
    if token == WindowKind.LAST_30.value:
        return DateWindow(WindowKind.LAST_30, token, today - timedelta(days=29), today)
    if token == WindowKind.LAST_3_MONTHS.value:
        return DateWindow(WindowKind.LAST_3_MONTHS, token, shift_months(today, -3), today)
    if token == WindowKind.LAST_6_MONTHS.value:
        return DateWindow(WindowKind.LAST_6_MONTHS, token, shift_months(today, -6), today)
    if token == WindowKind.LAST_YEAR.value:
        return DateWindow(WindowKind.LAST_YEAR, token, shift_months(today, -12), today)
    return None


def _parse_custom(token: str) -> DateWindow:
    segments = token.split(":")
    if len(segments) != 3:
        raise InvalidRangeToken(token, "expected custom:<start>:<end>")

    _, start_raw, end_raw = segments
    start = _parse_iso_date(token, start_raw, "start")
    end = _parse_iso_date(token, end_raw, "end")
    if start > end:
        raise InvalidRangeToken(token, "start date is after end date")

    return DateWindow(kind=WindowKind.CUSTOM, token=token, start=start, end=end)


def _parse_iso_date(token: str, value: str, label: str) -> date:
    if not value:
        raise InvalidRangeToken(token, f"missing {label} date")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidRangeToken(token, f"unparsable {label} date {value!r}") from exc


def _zone(timezone: Optional[str]) -> Optional[ZoneInfo]:
    if not timezone:
        return None
    try:
        return ZoneInfo(timezone)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown timezone {timezone!r}") from exc
