"""
Shared route dependencies: date-window resolution and cached aggregate reads.
"""

from typing import Any, Callable, Dict, List, Optional

import structlog
from fastapi import Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sr_dashboard.analytics.date_window import DateWindow, parse_range_token
from sr_dashboard.analytics.queries import MetricFamily, run_aggregation
from sr_dashboard.config import Settings, get_settings
from sr_dashboard.database.connection import get_session_factory
from sr_dashboard.serving.cache import CacheManager, aggregate_cache, aggregate_key

logger = structlog.get_logger(__name__)


def window_dependency(default: str) -> Callable[..., DateWindow]:
    """
    Dependency resolving the dateRange query parameter.

    The resolved window is echoed in response headers so callers can see
    when an unrecognized token fell back to the default window.
    """

    def dependency(
        response: Response,
        date_range: Optional[str] = Query(default, alias="dateRange"),
        settings: Settings = Depends(get_settings),
    ) -> DateWindow:
        window = parse_range_token(
            date_range if date_range is not None else default,
            timezone=settings.dashboard.timezone,
            strict=settings.dashboard.strict_range_tokens,
        )
        response.headers["X-Date-Window"] = window.cache_key()
        if window.fallback:
            response.headers["X-Date-Window-Fallback"] = "true"
        return window

    return dependency


def provide_session_factory() -> Optional[async_sessionmaker[AsyncSession]]:
    """
    Session factory for aggregations.

    None when the store was never initialized; run_aggregation then reports
    the failure as an AggregationError rather than a server error.
    """
    try:
        return get_session_factory()
    except RuntimeError:
        return None


class AggregateReader:
    """Runs aggregate families for one request, through the result cache"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]],
        cache: CacheManager = aggregate_cache,
    ):
        self.session_factory = session_factory
        self.cache = cache

    async def rows(self, family: MetricFamily, window: DateWindow, **filters: Any) -> List[Dict[str, Any]]:
        filters = {k: v for k, v in filters.items() if v is not None}
        key = aggregate_key(family.value, window, filters)

        async def compute() -> List[Dict[str, Any]]:
            result = await run_aggregation(
                family,
                window,
                filters,
                session_factory=self.session_factory,
            )
            return result.rows

        return await self.cache.get_or_set(key, compute)

    async def first(self, family: MetricFamily, window: DateWindow, **filters: Any) -> Optional[Dict[str, Any]]:
        rows = await self.rows(family, window, **filters)
        return rows[0] if rows else None


def get_reader(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = Depends(provide_session_factory),
) -> AggregateReader:
    return AggregateReader(session_factory)
