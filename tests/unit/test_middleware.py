"""
Unit Tests - API Middleware
"""
import pytest
from fastapi import FastAPI, Response
from httpx import ASGITransport, AsyncClient

from sr_dashboard.serving.api.middleware import (
    RateLimitMiddleware,
    RequestBudget,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)


def build_app(**limits) -> FastAPI:
    app = FastAPI()

    @app.get("/api/v1/health/live")
    async def live():
        return {"status": "alive"}

    @app.get("/api/v1/sales/summary")
    async def summary(response: Response):
        response.headers["X-Date-Window"] = "2025-08-11:2025-08-17"
        return {"totalOrders": 0}

    @app.get("/api/v1/export")
    async def export():
        return {"rows": []}

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, **limits)
    app.add_middleware(RequestLoggingMiddleware)
    return app


@pytest.fixture
async def client():
    app = build_app(max_requests=2, window_seconds=60)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


# =============================================================================
# Request budget
# =============================================================================

class TestRequestBudget:
    """Tests for the sliding-window budget"""

    async def test_refuses_once_spent(self):
        budget = RequestBudget(capacity=3, window_seconds=60)

        assert await budget.spend("a", now=0.0) == 2
        assert await budget.spend("a", cost=2, now=1.0) == 0
        assert await budget.spend("a", now=2.0) is None

    async def test_clients_are_independent(self):
        budget = RequestBudget(capacity=1, window_seconds=60)

        assert await budget.spend("a", now=0.0) == 0
        assert await budget.spend("b", now=0.0) == 0

    async def test_window_slides(self):
        budget = RequestBudget(capacity=1, window_seconds=60)
        await budget.spend("a", now=0.0)

        assert await budget.spend("a", now=59.0) is None
        assert await budget.spend("a", now=60.0) == 0

    async def test_refused_requests_spend_nothing(self):
        budget = RequestBudget(capacity=2, window_seconds=60)
        await budget.spend("a", now=0.0)

        assert await budget.spend("a", cost=5, now=1.0) is None
        assert await budget.spend("a", now=2.0) == 0

    async def test_drained_clients_are_forgotten(self):
        budget = RequestBudget(capacity=2, window_seconds=60)
        for n in range(50):
            await budget.spend(f"198.51.100.{n}", now=0.0)
        assert budget.tracked_clients() == 50

        await budget.spend("203.0.113.7", now=61.0)

        assert budget.tracked_clients() == 1

    async def test_returning_client_starts_fresh(self):
        budget = RequestBudget(capacity=2, window_seconds=60)
        await budget.spend("a", cost=2, now=0.0)

        assert await budget.spend("a", now=60.0) == 1
        assert budget.tracked_clients() == 1

    async def test_refused_newcomer_is_not_tracked(self):
        budget = RequestBudget(capacity=2, window_seconds=60)

        assert await budget.spend("a", cost=5, now=0.0) is None
        assert budget.tracked_clients() == 0


# =============================================================================
# Rate limit middleware
# =============================================================================

class TestRateLimit:
    """Tests for RateLimitMiddleware"""

    async def test_limit_per_client(self, client):
        assert (await client.get("/api/v1/sales/summary")).headers["X-RateLimit-Remaining"] == "1"
        assert (await client.get("/api/v1/sales/summary")).status_code == 200

        limited = await client.get("/api/v1/sales/summary")

        assert limited.status_code == 429
        assert limited.json()["error"] == "rate_limited"
        assert limited.headers["Retry-After"] == "60"

    async def test_health_probes_are_not_counted(self, client):
        for _ in range(5):
            assert (await client.get("/api/v1/health/live")).status_code == 200

        assert (await client.get("/api/v1/sales/summary")).status_code == 200

    async def test_exports_spend_more(self):
        app = build_app(max_requests=12, window_seconds=60)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            exported = await client.get("/api/v1/export")
            assert exported.headers["X-RateLimit-Remaining"] == "2"

            await client.get("/api/v1/sales/summary")
            await client.get("/api/v1/sales/summary")

            assert (await client.get("/api/v1/sales/summary")).status_code == 429

    async def test_forwarded_clients_counted_separately(self):
        app = build_app(max_requests=1, window_seconds=60, trust_forwarded=True)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            first = await client.get("/api/v1/sales/summary", headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"})
            second = await client.get("/api/v1/sales/summary", headers={"X-Forwarded-For": "10.0.0.2"})
            repeat = await client.get("/api/v1/sales/summary", headers={"X-Forwarded-For": "10.0.0.1"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert repeat.status_code == 429


# =============================================================================
# Headers
# =============================================================================

class TestHeaders:
    """Tests for logging and security headers"""

    async def test_request_id_generated(self, client):
        response = await client.get("/api/v1/health/live")

        assert len(response.headers["X-Request-ID"]) == 32
        assert response.headers["X-Response-Time"].endswith("ms")

    async def test_request_id_echoed(self, client):
        response = await client.get("/api/v1/sales/summary", params={"dateRange": "7d"}, headers={"X-Request-ID": "r-1"})

        assert response.headers["X-Request-ID"] == "r-1"
        assert response.headers["X-Date-Window"] == "2025-08-11:2025-08-17"

    async def test_security_headers(self, client):
        response = await client.get("/api/v1/health/live")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"
