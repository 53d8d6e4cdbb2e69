"""
API Middleware

- Request logging: request id and range token bound into structlog contextvars,
  resolved window reported on completion
- Per-client rate limiting, with exports weighted heavier than dashboard reads
- Response headers for a read-only JSON API
"""

import asyncio
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def client_key(request: Request, trust_forwarded: bool = False) -> str:
    """Address a request is accounted to; first X-Forwarded-For hop when behind a trusted proxy"""
    if trust_forwarded:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its timing and the date window it resolved to"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        range_token = request.query_params.get("dateRange")
        if range_token is not None:
            structlog.contextvars.bind_contextvars(range_token=range_token)

        logger.debug("Request started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Request crashed", method=request.method, path=request.url.path)
            structlog.contextvars.clear_contextvars()
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            window=response.headers.get("X-Date-Window"),
            fallback=response.headers.get("X-Date-Window-Fallback") == "true",
        )
        structlog.contextvars.clear_contextvars()

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestBudget:
    """
    Sliding-window request budget per client.

    Each request spends `cost` units; a client is refused once the units spent
    inside the last `window_seconds` reach `capacity`. State is per process;
    a client whose history drains is forgotten, and idle clients are swept
    once per window.
    """

    def __init__(self, capacity: int, window_seconds: int):
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._spent: Dict[str, Deque[Tuple[float, int]]] = {}
        self._swept_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def tracked_clients(self) -> int:
        return len(self._spent)

    def _used(self, client: str, now: float) -> int:
        history = self._spent.get(client)
        if history is None:
            return 0
        while history and now - history[0][0] >= self.window_seconds:
            history.popleft()
        if not history:
            del self._spent[client]
            return 0
        return sum(cost for _, cost in history)

    def _sweep(self, now: float) -> None:
        if self._swept_at is not None and now - self._swept_at < self.window_seconds:
            return
        self._swept_at = now
        for client in list(self._spent):
            self._used(client, now)

    async def spend(self, client: str, cost: int = 1, now: Optional[float] = None) -> Optional[int]:
        """Record a request; returns the units left, or None when refused"""
        now = time.monotonic() if now is None else now
        async with self._lock:
            self._sweep(now)
            used = self._used(client, now)
            if used + cost > self.capacity:
                return None
            self._spent.setdefault(client, deque()).append((now, cost))
            return self.capacity - used - cost


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-client rate limit for dashboard reads.

    Health probes are not counted. Paths under a weighted prefix (exports by
    default) spend more of the budget than a single dashboard read.
    """

    def __init__(
        self,
        app,
        max_requests: int = 120,
        window_seconds: int = 60,
        exempt_prefixes: Tuple[str, ...] = ("/api/v1/health",),
        weighted_prefixes: Optional[Dict[str, int]] = None,
        trust_forwarded: bool = False,
    ):
        super().__init__(app)
        self.budget = RequestBudget(max_requests, window_seconds)
        self.exempt_prefixes = exempt_prefixes
        self.weighted_prefixes = weighted_prefixes if weighted_prefixes is not None else {"/api/v1/export": 10}
        self.trust_forwarded = trust_forwarded

    def cost_of(self, path: str) -> int:
        for prefix, cost in self.weighted_prefixes.items():
            if path.startswith(prefix):
                return cost
        return 1

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path.startswith(self.exempt_prefixes):
            return await call_next(request)

        client = client_key(request, self.trust_forwarded)
        remaining = await self.budget.spend(client, self.cost_of(path))
        limit = str(self.budget.capacity)

        if remaining is None:
            logger.warning("Rate limit exceeded", client=client, path=path)
            return JSONResponse(
                status_code=429,
                content={"error": "rate_limited", "message": "Too many dashboard requests"},
                headers={
                    "Retry-After": str(self.budget.window_seconds),
                    "X-RateLimit-Limit": limit,
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = limit
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Headers for a read-only API; aggregates carry live figures and are never cached by browsers"""

    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
        "Cache-Control": "no-store",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response
