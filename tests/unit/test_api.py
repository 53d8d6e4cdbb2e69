"""
Unit Tests - Dashboard API
"""
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from sr_dashboard.config import Settings, get_settings
from sr_dashboard.config.settings import DashboardSettings, SecuritySettings
from sr_dashboard.database.models import OrderStatus
from sr_dashboard.serving.api.auth import LoginGuard, get_login_guard
from sr_dashboard.serving.api.dependencies import provide_session_factory
from sr_dashboard.serving.api.main import create_api_app
from sr_dashboard.serving.api.routes import health

AUGUST_17 = {"dateRange": "custom:2025-08-17:2025-08-17"}


@pytest.fixture
def app(session_factory):
    app = create_api_app()
    app.dependency_overrides[provide_session_factory] = lambda: session_factory
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def seeded(store):
    store.referrer(1, "Alice Mwangi", "SR0001")
    store.referrer(2, "Brian Otieno", "SR0002")
    store.referrer(3, "Marketing Person", "XX0003")
    store.user(1, "SR0001", datetime(2025, 8, 10, 10))
    store.user(2, "SR0002", datetime(2025, 8, 11, 10))
    store.user(3, "SR0002", datetime(2025, 8, 11, 12))
    store.order(1, 1, datetime(2025, 8, 17, 10), total="17.25", status=OrderStatus.DELIVERED)
    await store.commit()
    return store


class TestReads:
    """Tests for dashboard read endpoints"""

    async def test_sales_summary_is_camel_case(self, client, seeded):
        response = await client.get("/api/v1/sales/summary", params=AUGUST_17)

        assert response.status_code == 200
        body = response.json()
        assert body["totalOrders"] == 1
        assert body["totalOrderValue"] == 17.25
        assert body["totalRevenue"] == 17.25
        assert body["srLinkedOrders"] == 1
        assert body["srLinkedPercentage"] == 100.0
        assert "total_orders" not in body
        assert response.headers["X-Date-Window"] == "2025-08-17:2025-08-17"

    async def test_empty_window_summary(self, client, seeded):
        response = await client.get("/api/v1/sales/summary", params={"dateRange": "custom:2024-01-01:2024-01-01"})

        assert response.status_code == 200
        assert response.json()["avgOrderValue"] == 0

    async def test_malformed_range_is_rejected(self, client):
        response = await client.get("/api/v1/dashboard/summary", params={"dateRange": "custom:2025-08-17"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_range_token"
        assert body["token"] == "custom:2025-08-17"

    async def test_unrecognized_range_falls_back_visibly(self, client):
        response = await client.get("/api/v1/dashboard/summary", params={"dateRange": "fortnight"})

        assert response.status_code == 200
        assert response.headers["X-Date-Window-Fallback"] == "true"

    async def test_leaderboard(self, client, seeded):
        response = await client.get("/api/v1/leaderboard", params={"dateRange": "all", "sortBy": "bogus"})

        assert response.status_code == 200
        entries = response.json()
        assert [(e["referralCode"], e["rank"]) for e in entries] == [("SR0002", 1), ("SR0001", 2)]
        assert entries[0]["totalCustomersRegistered"] == 2

    async def test_leaderboard_limit(self, client, seeded):
        response = await client.get("/api/v1/leaderboard", params={"dateRange": "all", "sortBy": "orders", "limit": 1})

        assert [e["referralCode"] for e in response.json()] == ["SR0001"]

    async def test_sr_profile_by_code_and_id(self, client, seeded):
        by_code = await client.get("/api/v1/srs/SR0001", params={"dateRange": "custom:2025-08-10:2025-08-17"})
        by_id = await client.get("/api/v1/srs/1", params={"dateRange": "custom:2025-08-10:2025-08-17"})

        assert by_code.status_code == 200
        assert by_code.json() == by_id.json()
        assert by_code.json()["dailyData"] == [
            {"date": "2025-08-17", "registrations": 0, "orders": 1, "orderValue": 17.25},
            {"date": "2025-08-10", "registrations": 1, "orders": 0, "orderValue": 0.0},
        ]

    async def test_unknown_sr(self, client, seeded):
        assert (await client.get("/api/v1/srs/999")).status_code == 404
        assert (await client.get("/api/v1/srs/XX0003")).status_code == 404

    async def test_roster_excludes_placeholders(self, client, seeded):
        response = await client.get("/api/v1/srs")

        assert {sr["referralCode"] for sr in response.json()} == {"SR0001", "SR0002"}

    async def test_registration_sources(self, client, seeded):
        response = await client.get("/api/v1/registrations/sources", params={"dateRange": "all"})

        assert response.json() == [{"source": "Valid SR", "registrations": 3, "percentage": 100.0}]

    async def test_operations_boards_are_empty_without_staff(self, client, seeded):
        for path in ("/api/v1/drivers", "/api/v1/csr", "/api/v1/packing", "/api/v1/drivers/trends"):
            response = await client.get(path)
            assert response.status_code == 200
            assert response.json() == []

    async def test_request_id_header(self, client):
        response = await client.get("/api/v1/health/live", headers={"X-Request-ID": "abc123"})

        assert response.json() == {"status": "alive"}
        assert response.headers["X-Request-ID"] == "abc123"


class TestFailures:
    """Tests for store failures reaching the client"""

    async def test_store_failure_is_503(self, app, client, broken_session_factory):
        app.dependency_overrides[provide_session_factory] = lambda: broken_session_factory

        response = await client.get("/api/v1/dashboard/summary")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        body = response.json()
        assert body["error"] == "aggregation_failed"
        assert body["family"] == "dashboard_summary"
        assert body["retryable"] is True

    async def test_uninitialized_store_is_503(self, app, client):
        app.dependency_overrides[provide_session_factory] = lambda: None

        response = await client.get("/api/v1/sales/summary")

        assert response.status_code == 503


class TestExport:
    """Tests for the export endpoint"""

    async def test_summary_csv(self, client, seeded):
        response = await client.get("/api/v1/export", params={"format": "csv", "detail": "summary", "dateRange": "all"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "sr_summary_" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert lines[0] == (
            "id,name,referral_code,phone,email,join_date,"
            "total_customers_registered,total_orders,total_order_value,conversion_rate"
        )
        assert len(lines) == 3

    async def test_detailed_json(self, client, seeded):
        response = await client.get(
            "/api/v1/export",
            params={"format": "json", "detail": "detailed", "dateRange": "custom:2025-08-10:2025-08-17"},
        )

        body = response.json()
        assert body["count"] == 3
        assert body["rows"][0]["order_status"] in ("delivered", None)
        assert response.headers["content-disposition"].endswith('.json"')

    async def test_unknown_format_is_rejected(self, client):
        response = await client.get("/api/v1/export", params={"format": "xml"})

        assert response.status_code == 422


class TestAuth:
    """Tests for login and role checks"""

    @pytest.fixture
    def guard(self, app):
        guard = LoginGuard(max_attempts=2, lockout_seconds=60)
        app.dependency_overrides[get_login_guard] = lambda: guard
        return guard

    @pytest.fixture
    def secured(self, app, guard):
        settings = Settings(
            security=SecuritySettings(
                JWT_SECRET_KEY="api-test-secret",
                AUTH_ENABLED=True,
                ADMIN_PASSWORD="admin-pass",
                VIEWER_PASSWORD="viewer-pass",
            ),
        )
        app.dependency_overrides[get_settings] = lambda: settings
        return settings

    async def login(self, client, password):
        return await client.post("/api/v1/auth/login", json={"password": password})

    async def test_token_required(self, client, secured):
        response = await client.get("/api/v1/dashboard/summary")

        assert response.status_code == 401

    async def test_viewer_reads_but_cannot_export(self, client, secured):
        login = await self.login(client, "viewer-pass")
        assert login.status_code == 200
        body = login.json()
        assert body["role"] == "viewer"
        assert body["tokenType"] == "bearer"
        headers = {"Authorization": f"Bearer {body['accessToken']}"}

        assert (await client.get("/api/v1/dashboard/summary", headers=headers)).status_code == 200
        assert (await client.get("/api/v1/export", headers=headers)).status_code == 403

    async def test_admin_exports(self, client, secured):
        token = (await self.login(client, "admin-pass")).json()["accessToken"]

        response = await client.get("/api/v1/export", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    async def test_invalid_token(self, client, secured):
        response = await client.get("/api/v1/dashboard/summary", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    async def test_lockout_after_failures(self, client, secured):
        assert (await self.login(client, "wrong")).status_code == 401
        assert (await self.login(client, "wrong")).status_code == 401

        locked = await self.login(client, "admin-pass")

        assert locked.status_code == 429
        assert int(locked.headers["Retry-After"]) > 0


class TestHealth:
    """Tests for the dashboard calendar health check"""

    def test_calendar_reports_zone(self, monkeypatch):
        settings = Settings(dashboard=DashboardSettings(timezone="Africa/Nairobi", strict_range_tokens=True))
        monkeypatch.setattr(health, "get_settings", lambda: settings)

        check = health.calendar_check()

        assert check["status"] == "healthy"
        assert check["timezone"] == "Africa/Nairobi"
        assert check["strict_range_tokens"] is True

    def test_server_local_calendar(self, monkeypatch):
        monkeypatch.setattr(health, "get_settings", lambda: Settings())

        assert health.calendar_check()["timezone"] == "server-local"
