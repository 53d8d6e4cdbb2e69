"""
Redis Cache Module

Result cache for derived aggregates. Keys name the metric family, the resolved
window bounds and the filters, never the relative token, so "7d" requested on
different days does not share an entry.

Only successful results are written; a failed aggregation raises before
reaching the cache. A disabled, uninitialized or failing Redis is bypassed and
every read goes to the store.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import structlog
from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from sr_dashboard.analytics.date_window import DateWindow
from sr_dashboard.config import get_settings

logger = structlog.get_logger(__name__)

# Bump when the shape of derived rows changes so stale entries are never read
KEY_VERSION = "v1"

_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Optional[Redis]:
    """Connect the result cache; returns None when caching is disabled"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    if not settings.redis.enabled:
        logger.info("Redis cache disabled")
        return None

    pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=settings.redis.decode_responses,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except RedisError as e:
        logger.error("Redis connection failed", error=str(e))
        await client.aclose()
        await pool.disconnect()
        raise

    _redis_pool = pool
    _redis_client = client
    logger.info("Redis connection established", ttl_seconds=settings.dashboard.cache_ttl_seconds)
    return _redis_client


async def close_redis() -> None:
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection closed")


def get_redis() -> Optional[Redis]:
    """Redis client, None when the cache is bypassed"""
    return _redis_client


def aggregate_key(name: str, window: DateWindow, filters: Optional[Mapping[str, Any]] = None) -> str:
    """Key from family, resolved window bounds and filters"""
    parts = [name, window.cache_key()]
    for key in sorted(filters or {}):
        value = filters[key]
        if value is not None:
            parts.append(f"{key}={value}")
    return ":".join(parts)


@dataclass
class CacheStats:
    """Per-process counters; reset on restart"""
    hits: int = 0
    misses: int = 0
    writes: int = 0
    errors: int = 0

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return round(self.hits / lookups, 3) if lookups else 0.0


class CacheManager:
    """
    Namespaced JSON cache over the shared Redis client.

    Example:
        cache = CacheManager("aggregates")
        rows = await cache.get_or_set(key, compute)
    """

    def __init__(self, namespace: str, default_ttl: Optional[int] = None):
        self.namespace = namespace
        self._default_ttl = default_ttl
        self.stats = CacheStats()

    @property
    def default_ttl(self) -> int:
        if self._default_ttl is not None:
            return self._default_ttl
        return get_settings().dashboard.cache_ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{KEY_VERSION}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on a miss or when the cache is unavailable"""
        client = get_redis()
        if client is None:
            return None

        full_key = self._key(key)
        try:
            raw = await client.get(full_key)
        except RedisError as e:
            self.stats.errors += 1
            logger.warning("Cache read failed, bypassing", key=full_key, error=str(e))
            return None

        if raw is None:
            self.stats.misses += 1
            return None

        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            self.stats.misses += 1
            logger.warning("Discarding undecodable cache entry", key=full_key)
            return None

        self.stats.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store value for ttl seconds; False when nothing was written"""
        client = get_redis()
        if client is None:
            return False

        full_key = self._key(key)
        try:
            serialized = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize value for cache", key=full_key, error=str(e))
            return False

        try:
            await client.setex(full_key, ttl or self.default_ttl, serialized)
        except RedisError as e:
            self.stats.errors += 1
            logger.warning("Cache write failed, bypassing", key=full_key, error=str(e))
            return False

        self.stats.writes += 1
        return True

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Get from cache or compute and cache.

        Exceptions from factory propagate and nothing is cached.
        """
        value = await self.get(key)
        if value is not None:
            logger.debug("Cache hit", namespace=self.namespace, key=key)
            return value

        value = await factory()
        await self.set(key, value, ttl)
        return value

    def describe(self) -> Dict[str, Any]:
        return {"namespace": self.namespace, "hit_ratio": self.stats.hit_ratio, **asdict(self.stats)}


aggregate_cache = CacheManager("aggregates")


async def check_redis_health() -> Dict[str, Any]:
    """Ping Redis; a disabled cache reports as such rather than unhealthy"""
    if not get_settings().redis.enabled:
        return {"status": "disabled"}

    client = get_redis()
    if client is None:
        return {"status": "unhealthy", "error": "not initialized"}

    try:
        await client.ping()
    except RedisError as e:
        return {"status": "unhealthy", "error": str(e), "cache": aggregate_cache.describe()}
    return {"status": "healthy", "cache": aggregate_cache.describe()}
