#!/usr/bin/env python3
"""
Health Checker Module

Aggregates the state of the cache subsystem for the diagnostics endpoints:
- /api/cache/status: store connectivity, statistics, recent operations
- /api/health: fast overall status, raced against a short timeout and
  reused for a few seconds

Aggregation only reads the cache manager and operation log; the one side
effect is the store's probe round-trip, which refreshes its health state.

Author: Senior Solution Architect
Date: 2025-12-05
"""

import asyncio
import os
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from schoolcache.core.config.constants import (
    STATUS_RECENT_LIMIT,
    STATUS_WINDOW,
    CacheResult,
    CacheSource,
    StoreConnectionStatus,
)
from schoolcache.core.config.settings import Settings, get_settings
from schoolcache.core.logging.logger import get_logger
from schoolcache.infrastructure.cache.cache_manager import CacheManager
from schoolcache.infrastructure.cache.keys import key_pattern_group
from schoolcache.infrastructure.cache.operation_log import CacheOperation

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def is_serverless() -> bool:
    """True on platforms where every request may hit a fresh process."""
    return os.getenv("VERCEL") == "1" or bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME"))


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health and diagnostics aggregation for the cache subsystem.

    STAGE-H: Health check orchestration

    Usage:
        checker = HealthChecker()
        checker.initialize(cache_manager)

        status = await checker.cache_status()     # /api/cache/status
        health = await checker.check_health()     # /api/health
    """

    def __init__(self, cache_manager: CacheManager | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._cache = cache_manager
        self._cached_health: dict[str, Any] | None = None
        self._cached_at: float | None = None

        logger.info("Health checker initialized", stage="H.0")

    def initialize(self, cache_manager: CacheManager) -> None:
        """Attach the cache manager to report on."""
        self._cache = cache_manager
        self._cached_health = None
        self._cached_at = None
        logger.info("Health checker dependencies set", stage="H.0.1")

    @property
    def is_initialized(self) -> bool:
        return self._cache is not None

    @property
    def cache(self) -> CacheManager:
        if self._cache is None:
            raise RuntimeError("HealthChecker used before initialize()")
        return self._cache

    # -------------------------------------------------------------------------
    # /api/cache/status
    # -------------------------------------------------------------------------

    async def cache_status(self) -> dict[str, Any]:
        """
        Build the cache diagnostics payload.

        STAGE-H.2: Cache status aggregation

        Statistics in ``cache`` and ``operations`` cover the last
        STATUS_WINDOW operations of this process only.
        """
        store = self.cache.store
        available = self.cache.is_available()
        connected = await store.test_connection() if available else False
        health = await store.health_status()

        window = self.cache.operations(STATUS_WINDOW)

        if connected:
            connection_status = StoreConnectionStatus.CONNECTED
        elif available:
            connection_status = StoreConnectionStatus.DISCONNECTED
        else:
            connection_status = StoreConnectionStatus.DISABLED

        return {
            "redis": {
                "available": available,
                "connected": connected,
                "health": health["status"],
                "last_health_check": health["last_check"],
                "status": connection_status.value,
                "avg_latency": _average_redis_latency(window),
            },
            "cache": {**self.cache.stats(), **_window_counts(window)},
            "operations": {
                "recent": [op.to_dict() for op in window[-STATUS_RECENT_LIMIT:]],
                "total": len(window),
                "by_pattern": _group_by_pattern(window),
            },
            "recent_logs": self.cache.debug_logs(STATUS_RECENT_LIMIT),
            "environment": {
                "redis_enabled": self.settings.redis.REDIS_ENABLED,
                "has_redis_url": bool(self.settings.redis.REDIS_URL),
                "has_redis_token": bool(self.settings.redis.REDIS_TOKEN),
                "is_serverless": is_serverless(),
            },
        }

    # -------------------------------------------------------------------------
    # /api/health
    # -------------------------------------------------------------------------

    async def perform_health_check(self) -> dict[str, Any]:
        """
        Check every dependency and derive an overall status.

        STAGE-H.1: Full health check

        A disabled cache is healthy (the app runs without it). A configured
        cache that fails its probe is degraded: requests still succeed, but
        every read goes to the database.
        """
        available = self.cache.is_available()
        start = time.perf_counter()
        connected = await self.cache.store.test_connection() if available else False
        response_time = round((time.perf_counter() - start) * 1000, 2)

        if not available:
            cache_check = {"status": "disabled", "response_time_ms": 0}
            status = HealthStatus.HEALTHY
        elif connected:
            cache_check = {"status": HealthStatus.HEALTHY.value, "response_time_ms": response_time}
            status = HealthStatus.HEALTHY
        else:
            cache_check = {"status": HealthStatus.UNHEALTHY.value, "response_time_ms": response_time}
            status = HealthStatus.DEGRADED

        stats = self.cache.stats()
        cache_check.update(hit_rate=stats["hit_rate"], errors=stats["errors"])

        return {
            "status": status.value,
            "timestamp": _timestamp(),
            "version": self.settings.app.APP_VERSION,
            "checks": {"cache": cache_check},
        }

    async def check_health(self) -> dict[str, Any]:
        """
        Health result for load balancers, always fast.

        STAGE-H.3: Raced, cached health check

        Reuses the previous result for HEALTH_CHECK_CACHE_TTL_MS. Otherwise
        runs perform_health_check() with a HEALTH_CHECK_TIMEOUT_MS timeout;
        on timeout or error a minimal healthy result is returned (and reused
        like a real one).
        """
        health_settings = self.settings.health
        now = time.monotonic()
        if (
            self._cached_health is not None
            and self._cached_at is not None
            and (now - self._cached_at) * 1000 < health_settings.HEALTH_CHECK_CACHE_TTL_MS
        ):
            return self._cached_health

        try:
            result = await asyncio.wait_for(
                self.perform_health_check(),
                timeout=health_settings.HEALTH_CHECK_TIMEOUT_MS / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Health check timed out, returning fallback",
                stage="H.3",
                timeout_ms=health_settings.HEALTH_CHECK_TIMEOUT_MS,
            )
            result = self._fallback_health()
        except Exception as e:
            logger.error("Health check failed, returning fallback", stage="H.3", error=str(e))
            result = self._fallback_health()

        self._cached_health = result
        self._cached_at = now
        return result

    def _fallback_health(self) -> dict[str, Any]:
        return {
            "status": HealthStatus.HEALTHY.value,
            "timestamp": _timestamp(),
            "version": self.settings.app.APP_VERSION,
            "checks": {"cache": {"status": HealthStatus.HEALTHY.value, "response_time_ms": 0}},
            "fallback": True,
        }


def _window_counts(window: list[CacheOperation]) -> dict[str, Any]:
    hits = sum(1 for op in window if op.result == CacheResult.HIT)
    misses = sum(1 for op in window if op.result == CacheResult.MISS)
    errors = sum(1 for op in window if op.result == CacheResult.ERROR)
    total = hits + misses
    return {
        "hits": hits,
        "misses": misses,
        "errors": errors,
        "total_operations": total,
        "hit_rate": round(hits / total * 100, 2) if total > 0 else 0.0,
    }


def _group_by_pattern(window: list[CacheOperation]) -> dict[str, dict[str, Any]]:
    groups: dict[str, dict[str, Any]] = {}
    durations: dict[str, float] = {}
    for op in window:
        pattern = key_pattern_group(op.key)
        group = groups.setdefault(pattern, {"count": 0, "hits": 0, "misses": 0, "avg_duration": None})
        group["count"] += 1
        if op.result == CacheResult.HIT:
            group["hits"] += 1
        elif op.result == CacheResult.MISS:
            group["misses"] += 1
        if op.duration_ms:
            durations[pattern] = durations.get(pattern, 0.0) + op.duration_ms

    for pattern, total in durations.items():
        groups[pattern]["avg_duration"] = round(total / groups[pattern]["count"])
    return groups


def _average_redis_latency(window: list[CacheOperation]) -> int | None:
    latencies = [
        op.duration_ms for op in window if op.source == CacheSource.REDIS and op.duration_ms
    ]
    if not latencies:
        return None
    return round(sum(latencies) / len(latencies))


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_health_checker: HealthChecker | None = None


def get_health_checker() -> HealthChecker:
    """Get global health checker instance."""
    global _health_checker
    if _health_checker is None:
        _health_checker = HealthChecker()
    return _health_checker


def reset_health_checker() -> None:
    """Drop the global health checker (tests)."""
    global _health_checker
    _health_checker = None
