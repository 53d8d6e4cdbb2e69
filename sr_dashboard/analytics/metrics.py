"""
Metric Derivation

Turns raw aggregate rows (whose numeric columns may arrive as Decimal, str,
int or None depending on the driver) into plain JSON-safe values, following a
declarative per-family table of FieldSpecs.

A zero denominator yields 0 for ratio fields. That is the "no data yet" state,
not a failure; store failures never reach this module.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sr_dashboard.database.models import OrderStatus


class FieldKind(str, Enum):
    """How a derived field is computed from the raw row"""
    INT = "int"
    IDENTIFIER = "identifier"
    FLOAT = "float"
    PERCENT = "percent"
    AVERAGE = "average"
    TEXT = "text"
    DATE = "date"
    DAY_NAME = "day_name"
    STATUS = "status"


@dataclass(frozen=True)
class FieldSpec:
    """
    One output field.

    source defaults to name. PERCENT and AVERAGE read numerator/denominator
    instead. places applies to FLOAT, PERCENT and AVERAGE.
    """
    name: str
    kind: FieldKind
    source: Optional[str] = None
    numerator: Optional[str] = None
    denominator: Optional[str] = None
    places: Optional[int] = None

    def __post_init__(self):
        if self.kind in (FieldKind.PERCENT, FieldKind.AVERAGE):
            if not self.numerator or not self.denominator:
                raise ValueError(f"{self.kind.value} field {self.name!r} needs numerator and denominator")

    @property
    def column(self) -> str:
        return self.source or self.name


DerivationSpec = Sequence[FieldSpec]

DEFAULT_PLACES = {
    FieldKind.FLOAT: 2,
    FieldKind.PERCENT: 1,
    FieldKind.AVERAGE: 2,
}


# Shorthand constructors for the field tables in queries.py

def integer(name: str, source: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.INT, source=source)


def identifier(name: str, source: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.IDENTIFIER, source=source)


def currency(name: str, source: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.FLOAT, source=source, places=2)


def percent(name: str, numerator: str, denominator: str, places: int = 1) -> FieldSpec:
    return FieldSpec(name, FieldKind.PERCENT, numerator=numerator, denominator=denominator, places=places)


def average(name: str, numerator: str, denominator: str, places: int = 2) -> FieldSpec:
    return FieldSpec(name, FieldKind.AVERAGE, numerator=numerator, denominator=denominator, places=places)


def text_field(name: str, source: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.TEXT, source=source)


def date_field(name: str, source: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.DATE, source=source)


def day_name(name: str, source: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.DAY_NAME, source=source)


def status_field(name: str, source: Optional[str] = None) -> FieldSpec:
    return FieldSpec(name, FieldKind.STATUS, source=source)


# =============================================================================
# COERCION
# =============================================================================

def to_float(value: Any) -> float:
    """Parse a driver value as float; missing, non-numeric or non-finite -> 0.0"""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError, InvalidOperation):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def to_int(value: Any) -> int:
    """Parse a driver value as int; missing or non-numeric -> 0"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return int(to_float(value))


def round_half_up(value: float, places: int) -> float:
    """Decimal rounding, 2.675 -> 2.68 rather than binary-float 2.67"""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def safe_ratio(numerator: Any, denominator: Any) -> float:
    """numerator / denominator, 0.0 when the denominator is zero or missing"""
    den = to_float(denominator)
    if den == 0:
        return 0.0
    return to_float(numerator) / den


def percentage(numerator: Any, denominator: Any, places: int = 1) -> float:
    return round_half_up(safe_ratio(numerator, denominator) * 100, places)


def mean(total: Any, count: Any, places: int = 2) -> float:
    return round_half_up(safe_ratio(total, count), places)


def to_iso_date(value: Any) -> Optional[str]:
    """Normalize DATE(...) output across drivers to YYYY-MM-DD"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def weekday_name(value: Any) -> Optional[str]:
    iso = to_iso_date(value)
    if iso is None:
        return None
    try:
        return date.fromisoformat(iso).strftime("%A")
    except ValueError:
        return None


# =============================================================================
# DERIVATION
# =============================================================================

def derive_metrics(raw: Optional[Mapping[str, Any]], spec: DerivationSpec) -> Dict[str, Any]:
    """
    Derive one typed metrics dict from one raw aggregate row.

    Missing rows or columns derive to zero values, so an empty window yields
    an all-zero summary.
    """
    raw = raw or {}
    result: Dict[str, Any] = {}

    for field in spec:
        places = field.places if field.places is not None else DEFAULT_PLACES.get(field.kind)

        if field.kind == FieldKind.INT:
            result[field.name] = to_int(raw.get(field.column))
        elif field.kind == FieldKind.IDENTIFIER:
            value = raw.get(field.column)
            result[field.name] = None if value is None else to_int(value)
        elif field.kind == FieldKind.FLOAT:
            result[field.name] = round_half_up(to_float(raw.get(field.column)), places)
        elif field.kind == FieldKind.PERCENT:
            result[field.name] = percentage(raw.get(field.numerator), raw.get(field.denominator), places)
        elif field.kind == FieldKind.AVERAGE:
            result[field.name] = mean(raw.get(field.numerator), raw.get(field.denominator), places)
        elif field.kind == FieldKind.DATE:
            result[field.name] = to_iso_date(raw.get(field.column))
        elif field.kind == FieldKind.DAY_NAME:
            result[field.name] = weekday_name(raw.get(field.column))
        elif field.kind == FieldKind.STATUS:
            result[field.name] = OrderStatus.label_for(raw.get(field.column))
        else:
            value = raw.get(field.column)
            result[field.name] = None if value is None else str(value)

    return result


def derive_rows(rows: Iterable[Mapping[str, Any]], spec: DerivationSpec) -> List[Dict[str, Any]]:
    """Derive every row with the same spec; every output row has the same keys"""
    return [derive_metrics(row, spec) for row in rows]
