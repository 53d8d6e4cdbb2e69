"""
Unit Tests - Database Connection
"""
import pytest
from fastapi import Response
from sqlalchemy import text

from sr_dashboard.database import connection
from sr_dashboard.database.models import Base
from sr_dashboard.serving.api.routes import health


@pytest.fixture
async def initialized():
    engine = await connection.init_database("sqlite+aiosqlite://")
    yield engine
    await connection.close_database()


class TestLifecycle:
    """Tests for pool initialization and health"""

    async def test_uninitialized_store_is_unhealthy(self):
        health = await connection.check_database_health()

        assert health == {"status": "unhealthy", "error": "database not initialized"}
        with pytest.raises(RuntimeError):
            connection.get_session_factory()

    async def test_health_reports_pool(self, initialized):
        health = await connection.check_database_health()

        assert health["status"] == "healthy"
        assert health["latency_ms"] >= 0
        assert "pool" in health

    async def test_init_is_idempotent(self, initialized):
        assert await connection.init_database("sqlite+aiosqlite://") is initialized

    async def test_sessions_come_from_the_pool(self, initialized):
        async with connection.get_db() as db:
            assert (await db.execute(text("SELECT 1"))).scalar() == 1

    async def test_close_releases_globals(self, initialized):
        await connection.close_database()

        with pytest.raises(RuntimeError):
            connection.get_engine()

    async def test_unreachable_store_raises(self, tmp_path):
        missing = tmp_path / "absent" / "store.db"

        with pytest.raises(Exception):
            await connection.init_database(f"sqlite+aiosqlite:///{missing}")

        with pytest.raises(RuntimeError):
            connection.get_engine()


class TestSchema:
    """Tests for the readiness schema check"""

    async def test_empty_store_misses_every_table(self, initialized):
        missing = await connection.missing_tables(Base.metadata.tables)

        assert missing == list(Base.metadata.tables)

    async def test_created_schema_is_complete(self, initialized):
        async with initialized.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        assert await connection.missing_tables(Base.metadata.tables) == []

    async def test_readiness_reports_missing_tables(self, initialized):
        response = Response()

        body = await health.readiness_check(response)

        assert response.status_code == 503
        assert body["reason"] == "schema_incomplete"
        assert "marketing_persons" in body["missing"]
