"""
Redis caching service.

Caches dashboard, monitoring, settings and permission reads with short
TTLs. When Redis is disabled or unreachable every read misses and every
write is a no-op, so callers never need to care.
"""

import json
import logging
import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import redis
from redis.exceptions import RedisError

from ..core.config import settings


logger = logging.getLogger(__name__)

T = TypeVar("T")


def cache_key(prefix: str, *parts: Any) -> str:
    """``cache_key(PREFIX_MONITORING, "stats", 30)`` -> ``healthchain:monitoring:stats:30``"""
    return ":".join([prefix, *(str(p) for p in parts)])


class CacheService:
    """Thin JSON wrapper around a lazily (re)connected Redis client."""

    PREFIX_DASHBOARD = "healthchain:dashboard"
    PREFIX_MONITORING = "healthchain:monitoring"
    PREFIX_SETTINGS = "healthchain:settings"
    PREFIX_PERMISSIONS = "healthchain:permissions"

    def __init__(self, url: Optional[str] = None, enabled: Optional[bool] = None):
        self.url = url or settings.redis_url
        self.enabled = settings.cache_enabled if enabled is None else enabled
        self._client: Optional[redis.Redis] = None
        if not self.enabled:
            logger.info("Caching disabled by configuration")

    # ==========================================================================
    # Connection
    # ==========================================================================

    def _client_or_none(self) -> Optional[redis.Redis]:
        """Return a live client, reconnecting once if the last one went away."""
        if not self.enabled:
            return None

        if self._client is not None:
            try:
                self._client.ping()
                return self._client
            except RedisError:
                logger.warning("Lost Redis connection, reconnecting")
                self._client = None

        try:
            client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            client.ping()
        except RedisError as e:
            logger.warning(f"Redis unavailable ({e}); serving without cache")
            return None

        logger.info("Redis cache connected")
        self._client = client
        return client

    @property
    def is_connected(self) -> bool:
        return self._client_or_none() is not None

    def _run(self, operation: str, key: str, fn: Callable[[redis.Redis], T], default: T) -> T:
        client = self._client_or_none()
        if client is None:
            return default
        try:
            return fn(client)
        except (RedisError, TypeError, ValueError) as e:
            logger.warning(f"Cache {operation} failed for {key}: {e}")
            return default

    # ==========================================================================
    # Operations
    # ==========================================================================

    def get(self, key: str) -> Optional[Any]:
        raw = self._run("get", key, lambda c: c.get(key), None)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store ``value`` as JSON. ``ttl`` is in seconds; None keeps it forever."""
        def _write(client: redis.Redis) -> bool:
            client.set(key, json.dumps(value, default=str), ex=ttl or None)
            return True
        return self._run("set", key, _write, False)

    def delete(self, key: str) -> bool:
        return self._run("delete", key, lambda c: bool(c.delete(key)), False)

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob such as ``healthchain:dashboard:*``."""
        def _delete(client: redis.Redis) -> int:
            keys = list(client.scan_iter(match=pattern))
            return client.delete(*keys) if keys else 0
        return self._run("delete_pattern", pattern, _delete, 0)

    # ==========================================================================
    # Invalidation
    # ==========================================================================

    def invalidate_dashboard(self) -> None:
        """Called after consent writes."""
        self.delete_pattern(cache_key(self.PREFIX_DASHBOARD, "*"))

    def invalidate_settings(self) -> None:
        self.delete(cache_key(self.PREFIX_SETTINGS, "merged"))

    def invalidate_permissions(self, role: Optional[str] = None) -> None:
        if role:
            self.delete(cache_key(self.PREFIX_PERMISSIONS, role))
        else:
            self.delete_pattern(cache_key(self.PREFIX_PERMISSIONS, "*"))

    # ==========================================================================
    # Health
    # ==========================================================================

    def health_check(self) -> dict:
        client = self._client_or_none()
        if client is None:
            reason = "Caching disabled" if not self.enabled else "Not connected to Redis"
            return {"status": "unhealthy", "connected": False, "error": reason}

        try:
            started = time.perf_counter()
            client.ping()
            latency_ms = (time.perf_counter() - started) * 1000
            memory = client.info(section="memory")
        except RedisError as e:
            return {"status": "unhealthy", "connected": False, "error": str(e)}

        return {
            "status": "healthy",
            "connected": True,
            "latency_ms": round(latency_ms, 2),
            "used_memory": memory.get("used_memory_human", "unknown"),
        }


_cache_service: Optional[CacheService] = None


def get_cache() -> CacheService:
    """Process-wide cache service, created on first use."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
    return _cache_service


def cached(key_func: Callable[..., str], ttl: int = 60, cache_empty: bool = False):
    """
    Cache a function's JSON-serialisable result under ``key_func(*args, **kwargs)``.

    Example:
        @cached(lambda db, days: cache_key(CacheService.PREFIX_MONITORING, "stats", days), ttl=60)
        def build_stats(db, days: int) -> dict:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            cache = get_cache()
            key = key_func(*args, **kwargs)

            hit = cache.get(key)
            if hit is not None:
                return hit

            result = func(*args, **kwargs)
            if result is not None or cache_empty:
                cache.set(key, result, ttl=ttl)
            return result
        return wrapper
    return decorator
