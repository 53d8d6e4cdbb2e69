"""
Analytics Module

Date windows, referrer classification, aggregation queries and metric
derivation.
"""
from .classifier import ReferrerRules, SourceClass, classify_source, is_valid_referrer
from .date_window import DateWindow, SqlPredicate, parse_range_token, resolve_date_window
from .errors import AggregationError, AnalyticsError, InvalidRangeToken
from .metrics import FieldKind, FieldSpec, derive_metrics, derive_rows
from .queries import AggregateResult, MetricFamily, run_aggregation

__all__ = [
    "ReferrerRules",
    "SourceClass",
    "classify_source",
    "is_valid_referrer",
    "DateWindow",
    "SqlPredicate",
    "parse_range_token",
    "resolve_date_window",
    "AggregationError",
    "AnalyticsError",
    "InvalidRangeToken",
    "FieldKind",
    "FieldSpec",
    "derive_metrics",
    "derive_rows",
    "AggregateResult",
    "MetricFamily",
    "run_aggregation",
]
