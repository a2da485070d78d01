"""Redis key-value backend adapter.

The cache is optional: every public method either returns a sentinel
(None / False / 0 / empty) or does nothing when the backend is unreachable or
a command fails. All command failures go through RedisBackend._guard, which is
the only place backend errors are caught. The one exception that does
propagate is DestructiveOperationError, raised before any I/O.
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional, TypeVar

import redis.asyncio as redis

from core.config import Settings
from core.exceptions import DestructiveOperationError
from core.logging import get_logger, log_cache_operation
from models.cache import BackendHealth, BackendInfo

logger = get_logger(__name__)

T = TypeVar("T")
ErrorListener = Callable[[str, Exception], None]
ClientFactory = Callable[[], redis.Redis]


class RedisBackend:
    """Lazily connected, fail-open Redis client wrapper.

    The connection handle is shared by every caller in the process. A failed
    connection attempt is not retried until redis_retry_interval has passed,
    so an outage does not turn every request into a connect timeout.
    """

    def __init__(self, settings: Settings,
                 client_factory: Optional[ClientFactory] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings
        self.redis: Optional[redis.Redis] = None
        self.last_error: Optional[str] = None
        self._client_factory = client_factory or self._create_client
        self._clock = clock
        self._connect_lock = asyncio.Lock()
        self._last_failure: Optional[float] = None
        self._error_listeners: List[ErrorListener] = []

    def _create_client(self) -> redis.Redis:
        return redis.from_url(
            self.settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=self.settings.redis_connect_timeout,
        )

    @property
    def is_connected(self) -> bool:
        return self.redis is not None

    def add_error_listener(self, listener: ErrorListener) -> None:
        """Register a callback invoked with (operation, exception) on command failure."""
        self._error_listeners.append(listener)

    # ============================================================================
    # Connection lifecycle
    # ============================================================================

    async def connect(self) -> Optional[redis.Redis]:
        """Return the shared client, connecting on first use.

        Returns None when Redis is disabled, unreachable, or still inside the
        retry cool-down after a failed attempt. Never raises for connectivity.
        """
        if self.redis is not None:
            return self.redis
        if not self.settings.redis_enabled:
            return None

        async with self._connect_lock:
            if self.redis is not None:
                return self.redis
            if self._in_cooldown():
                return None

            client = None
            try:
                client = self._client_factory()
                await asyncio.wait_for(client.ping(), timeout=self.settings.redis_connect_timeout)
            except asyncio.CancelledError:
                if client is not None:
                    await self._close_client(client)
                raise
            except Exception as e:
                self._last_failure = self._clock()
                self.last_error = str(e) or type(e).__name__
                logger.warning("Redis connection failed, running without cache",
                               error=self.last_error,
                               retry_in_seconds=self.settings.redis_retry_interval)
                if client is not None:
                    await self._close_client(client)
                return None

            self.redis = client
            self._last_failure = None
            self.last_error = None
            logger.info("Redis cache connected")
            return client

    def _in_cooldown(self) -> bool:
        if self._last_failure is None:
            return False
        return self._clock() - self._last_failure < self.settings.redis_retry_interval

    async def close(self) -> None:
        """Close the shared client. Safe to call when never connected."""
        client, self.redis = self.redis, None
        if client is not None:
            await self._close_client(client)
            logger.info("Redis cache connections closed")

    async def _close_client(self, client: redis.Redis) -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.debug("Ignoring error while closing Redis client", error=str(e))

    # ============================================================================
    # Fail-open command wrapper
    # ============================================================================

    async def _guard(self, operation: str,
                     command: Callable[[redis.Redis], Awaitable[T]],
                     default: T,
                     key: Optional[str] = None,
                     notify: bool = True) -> T:
        """Run a backend command, converting any failure into `default`."""
        client = await self.connect()
        if client is None:
            return default

        try:
            return await command(client)
        except Exception as e:
            self.last_error = str(e) or type(e).__name__
            logger.warning("Cache backend command failed",
                           operation=operation, cache_key=key, error=self.last_error)
            if notify:
                self._notify_error(operation, e)
            return default

    def _notify_error(self, operation: str, error: Exception) -> None:
        for listener in self._error_listeners:
            try:
                listener(operation, error)
            except Exception as e:
                logger.error("Cache error listener failed", operation=operation, error=str(e))

    # ============================================================================
    # Commands
    # ============================================================================

    async def get(self, key: str) -> Optional[str]:
        """GET. None on miss, on error, or when the backend is unavailable."""
        return await self._guard("get", lambda c: c.get(key), None, key=key)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        """SETEX. True only when the value was written."""
        async def _setex(client: redis.Redis) -> bool:
            await client.setex(key, ttl_seconds, value)
            log_cache_operation(logger, "set", key, ttl=ttl_seconds)
            return True

        return await self._guard("set", _setex, False, key=key)

    async def delete(self, *keys: str) -> int:
        """DEL one or more keys. Returns the number of keys removed."""
        if not keys:
            return 0

        async def _delete(client: redis.Redis) -> int:
            deleted = await client.delete(*keys)
            log_cache_operation(logger, "delete", ",".join(keys), deleted=deleted)
            return deleted

        return await self._guard("delete", _delete, 0, key=keys[0])

    async def keys_by_pattern(self, pattern: str) -> List[str]:
        """Keys matching a glob pattern, collected with incremental SCAN."""
        async def _scan(client: redis.Redis) -> List[str]:
            return [key async for key in client.scan_iter(match=pattern, count=500)]

        return await self._guard("scan", _scan, [], key=pattern)

    async def flush_all(self) -> bool:
        """FLUSHALL. Refused in production."""
        if self.settings.is_production:
            raise DestructiveOperationError("flush_all", self.settings.environment)

        async def _flush(client: redis.Redis) -> bool:
            await client.flushall()
            logger.warning("Flushed all cache entries", environment=self.settings.environment)
            return True

        return await self._guard("flush_all", _flush, False)

    async def info(self) -> Optional[BackendInfo]:
        """Key count and human-readable memory usage.

        None when the backend is unavailable. Memory usage is optional because
        some managed Redis offerings disable INFO.
        """
        key_count = await self._guard("dbsize", lambda c: c.dbsize(), None)
        if key_count is None:
            return None

        memory_info = await self._guard("info", lambda c: c.info("memory"), None, notify=False)
        memory_usage = None
        if memory_info:
            memory_usage = memory_info.get("used_memory_human")

        return BackendInfo(key_count=int(key_count), memory_usage_human=memory_usage)

    async def ping(self) -> BackendHealth:
        """Connectivity probe with round-trip latency in milliseconds."""
        async def _ping(client: redis.Redis) -> BackendHealth:
            start = time.perf_counter()
            await client.ping()
            latency = (time.perf_counter() - start) * 1000
            return BackendHealth(connected=True, latency=round(latency, 2))

        health = await self._guard("ping", _ping, None, notify=False)
        if health is not None:
            return health
        if not self.settings.redis_enabled:
            return BackendHealth(connected=False, error="Redis caching is disabled")
        return BackendHealth(connected=False, error=self.last_error or "Redis client not available")
