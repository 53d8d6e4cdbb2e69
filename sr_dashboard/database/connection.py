"""
Database Connection Management

Async SQLAlchemy 2.0 engine over a bounded connection pool. Every aggregation
acquires a session for the duration of its own query and releases it on exit;
no connection is held across unrelated aggregation calls.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy import inspect, text
from sqlalchemy.pool import QueuePool

from sr_dashboard.config import get_settings

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(url: Optional[str] = None) -> AsyncEngine:
    """
    Create an async engine with a bounded queue pool.

    pool_size + max_overflow caps concurrently checked-out connections;
    pool_timeout bounds how long a request waits for one.
    """
    settings = get_settings()
    url = url or settings.database.async_url

    engine_config = {
        "echo": settings.database.echo,
        "pool_pre_ping": True,
    }
    # SQLite uses a single-connection pool that takes no sizing arguments
    if not url.startswith("sqlite"):
        engine_config.update({
            "pool_size": settings.database.pool_size,
            "max_overflow": settings.database.max_overflow,
            "pool_timeout": settings.database.pool_timeout,
            "pool_recycle": 1800,
        })

    return create_async_engine(url, **engine_config)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for read-only aggregation sessions"""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(url: Optional[str] = None) -> AsyncEngine:
    """
    Open the pool and prove the store answers before serving.

    Args:
        url: SQLAlchemy URL; defaults to the configured store

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    engine = build_engine(url)
    safe_url = engine.url.render_as_string(hide_password=True)

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Failed to connect to database", url=safe_url, error=str(e))
        await engine.dispose()
        raise

    _engine = engine
    _async_session_factory = build_session_factory(engine)
    logger.info("Database connection established", url=safe_url, dialect=engine.dialect.name, **pool_status())
    return _engine


async def close_database() -> None:
    """Dispose of the pool; in-flight sessions finish on their own connections."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


def pool_status() -> Dict[str, Any]:
    """Occupancy of the connection pool; sized pools report checked-out and overflow counts"""
    pool = get_engine().pool
    if not isinstance(pool, QueuePool):
        return {"pool": type(pool).__name__}
    return {
        "pool": type(pool).__name__,
        "pool_size": pool.size(),
        "checked_out": pool.checkedout(),
        "overflow": pool.overflow(),
        "max_connections": get_settings().database.max_connections,
    }


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the session factory aggregations acquire sessions from.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _async_session_factory is None:
        logger.error("Database not initialized when session factory requested")
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _async_session_factory


@asynccontextmanager
async def get_db(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Acquire a session from the pool for one unit of read work.

    The underlying connection goes back to the pool when the block exits,
    whether it completed, failed or was cancelled.

    Example:
        async with get_db() as db:
            result = await db.execute(query)
    """
    factory = session_factory or get_session_factory()

    session = factory()
    try:
        yield session
    except Exception as e:
        logger.debug("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()


async def check_database_health() -> Dict[str, Any]:
    """Round-trip latency and pool occupancy, or the reason the store is unreachable"""
    if _engine is None:
        return {"status": "unhealthy", "error": "database not initialized"}
    try:
        start = time.perf_counter()
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
    except Exception as e:
        return {"status": "unhealthy", "error": str(e), "error_type": type(e).__name__}

    return {"status": "healthy", "latency_ms": round(latency_ms, 2), **pool_status()}


async def missing_tables(required: Iterable[str]) -> List[str]:
    """Required tables the store does not have, in the order given"""
    async with get_engine().connect() as conn:
        present = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
    return [name for name in required if name not in present]
