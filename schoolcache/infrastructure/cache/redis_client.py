"""
Redis Store Adapter

Architecture:
    RedisClient (Public API, implements RemoteStore)
        ├── ConnectionManager (lazy client creation and cleanup)
        ├── OperationExecutor (namespaced commands, retries, error mapping)
        └── HealthMonitor (probe round-trip and cached health state)

Every key is written under REDIS_KEY_PREFIX so that flushing "the cache"
only ever touches keys this application created, even when the Redis
instance is shared with other tenants.

Values are serialized with orjson. TTLs are milliseconds (SET ... PX).

Author: Refactored for clarity and maintainability
Date: 2025-12-13
"""

import re
import time
from datetime import datetime, timezone
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from schoolcache.core.config.constants import (
    HEALTH_PROBE_KEY_PREFIX,
    HEALTH_PROBE_TTL_MS,
    StoreHealthState,
)
from schoolcache.core.config.settings import Settings, get_settings
from schoolcache.core.exceptions import (
    CacheError,
    CacheReadError,
    CacheUnavailableError,
    CacheWriteError,
    PatternInvalidationError,
)
from schoolcache.core.logging.logger import get_logger

logger = get_logger(__name__)

# Characters with special meaning in Redis MATCH patterns
_GLOB_CHARS = re.compile(r"([\\*?\[\]])")


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so ``text`` matches literally."""
    return _GLOB_CHARS.sub(r"\\\1", text)


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# Lazy client creation, no network I/O until the first command
# =============================================================================


class ConnectionManager:
    """
    Owns the redis.asyncio client and its connection pool.

    The client is built on first use. Building it performs no I/O, so
    constructing the adapter in an environment without Redis is harmless.
    """

    def __init__(self, settings: Settings, client: redis.Redis | None = None):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = client
        self._owns_client = client is None

    def get_client(self) -> redis.Redis:
        """
        Return the Redis client, creating it on first call.

        STAGE-REDIS.2: Client creation

        Raises:
            CacheUnavailableError: If no REDIS_URL is configured
        """
        if self._client is not None:
            return self._client

        redis_settings = self._settings.redis
        if not redis_settings.REDIS_URL:
            raise CacheUnavailableError("Redis is not configured", details={"reason": "missing REDIS_URL"})

        pool_kwargs: dict[str, Any] = {
            "max_connections": redis_settings.REDIS_MAX_CONNECTIONS,
            "socket_timeout": redis_settings.REDIS_SOCKET_TIMEOUT,
            "socket_connect_timeout": redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            "decode_responses": True,
        }
        if redis_settings.REDIS_TOKEN:
            pool_kwargs["password"] = redis_settings.REDIS_TOKEN

        self._pool = ConnectionPool.from_url(redis_settings.REDIS_URL, **pool_kwargs)
        self._client = redis.Redis(connection_pool=self._pool)

        logger.info(
            "Redis client created",
            stage="REDIS.2",
            url=redis_settings.REDIS_URL,
            max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
        )
        return self._client

    async def disconnect(self) -> None:
        """
        Close the client and its pool.

        STAGE-REDIS.3: Connection cleanup

        Injected clients belong to the caller and are left open.
        """
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            if self._pool is not None:
                await self._pool.disconnect()
            self._client = None
            self._pool = None
            logger.info("Redis disconnected", stage="REDIS.3")


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# Namespaced commands with retries and error mapping
# =============================================================================


class OperationExecutor:
    """
    Executes Redis commands with consistent error handling.

    Error Handling Strategy:
    - Transient failures (connection drop, socket timeout) are retried with
      exponential backoff, REDIS_RETRY_ATTEMPTS attempts in total
    - Anything still failing is logged and re-raised as CacheReadError /
      CacheWriteError with the key in ``details``
    - A missing key is a normal ``None`` result
    """

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings
        self._prefix = settings.redis.REDIS_KEY_PREFIX

    def make_key(self, key: str) -> str:
        """Prefix ``key`` with the application namespace."""
        return f"{self._prefix}{key}"

    def _retrying(self) -> AsyncRetrying:
        redis_settings = self._settings.redis
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, redis_settings.REDIS_RETRY_ATTEMPTS)),
            wait=wait_exponential(multiplier=redis_settings.REDIS_RETRY_BASE_DELAY_MS / 1000),
            retry=retry_if_exception_type((ConnectionError, TimeoutError)),
            reraise=True,
        )

    async def get(self, key: str) -> Any | None:
        """
        Get and decode a value.

        STAGE-REDIS.GET: Redis GET operation
        """
        client = self._conn_mgr.get_client()
        try:
            raw = None
            async for attempt in self._retrying():
                with attempt:
                    raw = await client.get(self.make_key(key))
        except RedisError as e:
            logger.error("Redis GET failed", stage="REDIS.GET", key=key, error=str(e))
            raise CacheReadError.from_exception(e, message=f"Redis GET failed: {e}", key=key)

        if raw is None:
            return None

        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.error("Cached value is not valid JSON", stage="REDIS.GET", key=key, error=str(e))
            raise CacheReadError.from_exception(e, message="Cached value is not valid JSON", key=key)

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        """
        Serialize and store a value with a millisecond TTL.

        STAGE-REDIS.SET: Redis SET ... PX operation
        """
        if ttl_ms <= 0:
            raise CacheWriteError("TTL must be positive", details={"key": key, "ttl_ms": ttl_ms})

        try:
            payload = orjson.dumps(value)
        except TypeError as e:
            logger.error("Value is not serializable", stage="REDIS.SET", key=key, error=str(e))
            raise CacheWriteError.from_exception(e, message="Value is not serializable", key=key)

        client = self._conn_mgr.get_client()
        try:
            async for attempt in self._retrying():
                with attempt:
                    await client.set(self.make_key(key), payload, px=int(ttl_ms))
        except RedisError as e:
            logger.error("Redis SET failed", stage="REDIS.SET", key=key, error=str(e))
            raise CacheWriteError.from_exception(e, message=f"Redis SET failed: {e}", key=key)

    async def delete(self, key: str) -> int:
        """
        Delete a single key.

        STAGE-REDIS.DEL: Redis DELETE operation
        """
        client = self._conn_mgr.get_client()
        try:
            return await client.delete(self.make_key(key))
        except RedisError as e:
            logger.error("Redis DELETE failed", stage="REDIS.DEL", key=key, error=str(e))
            raise CacheWriteError.from_exception(e, message=f"Redis DELETE failed: {e}", key=key)

    async def delete_by_prefix(self, prefix: str) -> int:
        """
        Delete every namespaced key starting with ``prefix``.

        STAGE-REDIS.SCAN: SCAN MATCH + batched DEL

        SCAN walks the keyspace incrementally, so this never blocks Redis
        the way KEYS would. Keys are deleted in batches of REDIS_SCAN_COUNT
        as they are found. If enumeration breaks part way, the batch already
        collected is still deleted and PatternInvalidationError reports how
        many keys went.
        """
        client = self._conn_mgr.get_client()
        count = self._settings.redis.REDIS_SCAN_COUNT
        match = escape_glob(self.make_key(prefix)) + "*"

        deleted = 0
        batch: list[str] = []
        try:
            async for redis_key in client.scan_iter(match=match, count=count):
                batch.append(redis_key)
                if len(batch) >= count:
                    deleted += await client.delete(*batch)
                    batch = []
            if batch:
                deleted += await client.delete(*batch)
                batch = []
        except RedisError as e:
            if batch:
                try:
                    deleted += await client.delete(*batch)
                except RedisError as cleanup_error:
                    logger.warning(
                        "Could not delete keys collected before SCAN failure",
                        stage="REDIS.SCAN",
                        pending=len(batch),
                        error=str(cleanup_error),
                    )
            logger.error(
                "Pattern delete failed", stage="REDIS.SCAN", prefix=prefix, deleted=deleted, error=str(e)
            )
            raise PatternInvalidationError.from_exception(
                e, message=f"Pattern delete failed: {e}", prefix=prefix, deleted=deleted
            )

        logger.debug("Pattern delete complete", stage="REDIS.SCAN", prefix=prefix, deleted=deleted)
        return deleted


# =============================================================================
# LAYER 3: HEALTH MONITORING
# Probe round-trip, cached for REDIS_HEALTH_CHECK_INTERVAL seconds
# =============================================================================


class HealthMonitor:
    """
    Tracks the last known health of the store.

    Health is refreshed on demand (when someone asks and the cached result is
    older than REDIS_HEALTH_CHECK_INTERVAL), never by a background poller.
    """

    def __init__(self, executor: OperationExecutor, settings: Settings):
        self._executor = executor
        self._settings = settings
        self._state = StoreHealthState.UNKNOWN
        self._last_check: datetime | None = None
        self._last_check_monotonic: float | None = None
        self._last_latency_ms: float | None = None

    async def test_connection(self) -> bool:
        """
        Write, read back and delete a probe key.

        STAGE-REDIS.HEALTH: Redis round-trip test

        Returns:
            True if the probe value came back intact
        """
        probe_key = f"{HEALTH_PROBE_KEY_PREFIX}{int(time.time() * 1000)}"
        probe_value = {"ok": True}
        start = time.perf_counter()
        try:
            await self._executor.set(probe_key, probe_value, HEALTH_PROBE_TTL_MS)
            echoed = await self._executor.get(probe_key)
            await self._executor.delete(probe_key)
            healthy = echoed == probe_value
        except CacheError as e:
            logger.warning("Redis connection test failed", stage="REDIS.HEALTH", error=e.message)
            healthy = False

        self._last_latency_ms = round((time.perf_counter() - start) * 1000, 2)
        self._state = StoreHealthState.HEALTHY if healthy else StoreHealthState.UNHEALTHY
        self._last_check = datetime.now(timezone.utc)
        self._last_check_monotonic = time.monotonic()

        logger.info(
            "Redis connection test",
            stage="REDIS.HEALTH",
            healthy=healthy,
            latency_ms=self._last_latency_ms,
        )
        return healthy

    def is_stale(self) -> bool:
        if self._last_check_monotonic is None:
            return True
        interval = self._settings.redis.REDIS_HEALTH_CHECK_INTERVAL
        return time.monotonic() - self._last_check_monotonic > interval

    def snapshot(self, available: bool) -> dict[str, Any]:
        return {
            "available": available,
            "connected": available and self._state == StoreHealthState.HEALTHY,
            "status": self._state.value,
            "last_check": self._last_check.isoformat().replace("+00:00", "Z") if self._last_check else None,
            "latency_ms": self._last_latency_ms,
        }


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Redis-backed implementation of the RemoteStore protocol.

    Usage:
        store = RedisClient()
        if store.is_available():
            await store.set("admin:stats:global", {"schools": 5}, ttl_ms=30_000)
            stats = await store.get("admin:stats:global")
        await store.disconnect()

    Architecture:
        RedisClient (this class)
            ├── ConnectionManager (client lifecycle)
            ├── OperationExecutor (commands)
            └── HealthMonitor (health checks)
    """

    def __init__(self, settings: Settings | None = None, client: redis.Redis | None = None):
        """
        Initialize the adapter.

        STAGE-REDIS.1: Adapter initialization

        Args:
            settings: Settings to read REDIS_* values from (defaults to global)
            client: Pre-built redis.asyncio client, mainly for tests
        """
        self._settings = settings or get_settings()
        self._conn_mgr = ConnectionManager(self._settings, client=client)
        self._executor = OperationExecutor(self._conn_mgr, self._settings)
        self._health_monitor = HealthMonitor(self._executor, self._settings)

        logger.info(
            "Redis adapter initialized",
            stage="REDIS.1",
            enabled=self._settings.redis.REDIS_ENABLED,
            has_url=bool(self._settings.redis.REDIS_URL),
            key_prefix=self._settings.redis.REDIS_KEY_PREFIX,
        )

    def is_available(self) -> bool:
        """Configured and enabled. Performs no network I/O."""
        redis_settings = self._settings.redis
        return bool(redis_settings.REDIS_ENABLED and redis_settings.REDIS_URL)

    def _require_available(self) -> None:
        if not self.is_available():
            raise CacheUnavailableError(
                "Redis is disabled or not configured",
                details={
                    "enabled": self._settings.redis.REDIS_ENABLED,
                    "has_url": bool(self._settings.redis.REDIS_URL),
                },
            )

    async def get(self, key: str) -> Any | None:
        self._require_available()
        return await self._executor.get(key)

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        self._require_available()
        await self._executor.set(key, value, ttl_ms)

    async def delete(self, key: str) -> int:
        self._require_available()
        return await self._executor.delete(key)

    async def delete_by_pattern(self, prefix: str) -> int:
        """
        Delete every key that starts with ``prefix``.

        ``prefix`` is matched literally; callers strip the trailing ``*``
        of a ``prefix:*`` pattern before calling.
        """
        self._require_available()
        return await self._executor.delete_by_prefix(prefix)

    async def clear_namespace(self) -> int:
        """Delete every key under REDIS_KEY_PREFIX."""
        self._require_available()
        deleted = await self._executor.delete_by_prefix("")
        logger.info("Redis namespace cleared", stage="REDIS.CLEAR", deleted=deleted)
        return deleted

    async def test_connection(self) -> bool:
        """Round-trip a probe key. Returns False instead of raising."""
        if not self.is_available():
            return False
        return await self._health_monitor.test_connection()

    async def health_status(self) -> dict[str, Any]:
        """
        Last known health, re-tested when older than the check interval.

        Returns:
            Dict with available, connected, status, last_check, latency_ms
        """
        available = self.is_available()
        if available and self._health_monitor.is_stale():
            await self._health_monitor.test_connection()
        return self._health_monitor.snapshot(available)

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_redis_client: RedisClient | None = None


def get_redis_client() -> RedisClient:
    """
    Get the global Redis adapter (singleton).

    Only the application wiring should call this; everything else receives
    the adapter through CacheManager's constructor.
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = RedisClient()

    return _redis_client


async def close_redis() -> None:
    """Close the global Redis adapter."""
    global _redis_client

    if _redis_client:
        await _redis_client.disconnect()
        _redis_client = None
