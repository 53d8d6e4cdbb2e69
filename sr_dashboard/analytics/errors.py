"""
Analytics error taxonomy.

InvalidRangeToken is an input-validation failure the immediate caller can
reject. AggregationError is an infrastructure failure that must reach the top
level as a failure, never as a zero-filled result.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base class for analytics failures"""


class InvalidRangeToken(AnalyticsError, ValueError):
    """A range token could not be parsed into a date window"""

    def __init__(self, token: Any, reason: str) -> None:
        self.token = token
        self.reason = reason
        super().__init__(f"Invalid date range token {token!r}: {reason}")


class AggregationError(AnalyticsError, RuntimeError):
    """The relational store failed to produce an aggregate"""

    def __init__(
        self,
        family: str,
        window: str,
        message: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.family = family
        self.window = window
        self.filters = filters or {}
        super().__init__(f"Aggregation {family} over {window} failed: {message}")
