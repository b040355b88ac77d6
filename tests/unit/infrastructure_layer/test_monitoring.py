"""
Unit Tests for Health Checker

Tests the cache status payload, the dependency health check and the raced,
cached /api/health result.
"""

import asyncio

import pytest

from schoolcache.core.config.constants import CacheOperationType, CacheResult, CacheSource
from schoolcache.infrastructure.cache.operation_log import CacheOperation
from schoolcache.infrastructure.monitoring.health_checker import (
    HealthChecker,
    HealthStatus,
    is_serverless,
)


def record(manager, key, result, duration_ms=None, source=CacheSource.REDIS):
    manager.operation_log.record(
        CacheOperation(
            operation=CacheOperationType.GET,
            key=key,
            result=result,
            duration_ms=duration_ms,
            source=source,
        )
    )


@pytest.fixture
def checker(cache_manager, test_settings):
    return HealthChecker(cache_manager=cache_manager, settings=test_settings)


@pytest.mark.unit
class TestInitialization:
    """Test wiring."""

    def test_uninitialized_checker_refuses_to_report(self, test_settings):
        """Test that the cache property requires initialize()."""
        checker = HealthChecker(settings=test_settings)

        assert checker.is_initialized is False
        with pytest.raises(RuntimeError):
            _ = checker.cache

    @pytest.mark.asyncio
    async def test_initialize_drops_cached_health(self, checker, cache_manager):
        """Test that re-wiring forces a fresh health check."""
        await checker.check_health()
        assert checker._cached_health is not None

        checker.initialize(cache_manager)

        assert checker._cached_health is None
        assert checker.is_initialized is True


@pytest.mark.unit
class TestCacheStatus:
    """Test the /api/cache/status payload."""

    @pytest.mark.asyncio
    async def test_payload_sections(self, checker):
        """Test the top-level layout."""
        status = await checker.cache_status()

        assert set(status) == {"redis", "cache", "operations", "recent_logs", "environment"}
        assert set(status["redis"]) == {
            "available",
            "connected",
            "health",
            "last_health_check",
            "status",
            "avg_latency",
        }

    @pytest.mark.asyncio
    async def test_connected_store(self, checker):
        """Test the healthy case."""
        redis = (await checker.cache_status())["redis"]

        assert redis["available"] is True
        assert redis["connected"] is True
        assert redis["status"] == "connected"
        assert redis["health"] == "healthy"
        assert redis["last_health_check"] == "2025-12-05T10:00:00Z"

    @pytest.mark.asyncio
    async def test_disconnected_store(self, failing_cache_manager, test_settings):
        """Test a configured store that fails its probe."""
        checker = HealthChecker(cache_manager=failing_cache_manager, settings=test_settings)

        redis = (await checker.cache_status())["redis"]

        assert redis["available"] is True
        assert redis["connected"] is False
        assert redis["status"] == "disconnected"
        assert redis["health"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_disabled_store(self, unavailable_cache_manager, test_settings):
        """Test that an unconfigured store is reported as disabled."""
        checker = HealthChecker(cache_manager=unavailable_cache_manager, settings=test_settings)

        redis = (await checker.cache_status())["redis"]

        assert redis["status"] == "disabled"
        assert redis["connected"] is False
        assert redis["last_health_check"] is None

    @pytest.mark.asyncio
    async def test_window_counts(self, checker, cache_manager):
        """Test hits, misses, errors and hit rate over the recent window."""
        for _ in range(3):
            record(cache_manager, "admin:stats:global", CacheResult.HIT)
        record(cache_manager, "admin:stats:global", CacheResult.MISS)
        record(cache_manager, "school:1", CacheResult.ERROR)

        cache = (await checker.cache_status())["cache"]

        assert cache["hits"] == 3
        assert cache["misses"] == 1
        assert cache["errors"] == 1
        assert cache["total_operations"] == 4
        assert cache["hit_rate"] == 75.0
        assert cache["redis_available"] is True

    @pytest.mark.asyncio
    async def test_window_is_last_hundred_operations(self, checker, cache_manager):
        """Test that older operations fall out of the counts."""
        for _ in range(50):
            record(cache_manager, "school:1", CacheResult.MISS)
        for _ in range(100):
            record(cache_manager, "school:1", CacheResult.HIT)

        status = await checker.cache_status()

        assert status["cache"]["hit_rate"] == 100.0
        assert status["operations"]["total"] == 100
        assert len(status["operations"]["recent"]) == 20

    @pytest.mark.asyncio
    async def test_by_pattern_and_latency(self, checker, cache_manager):
        """Test per-pattern grouping and the Redis latency average."""
        record(cache_manager, "admin:stats:global", CacheResult.HIT, duration_ms=4)
        record(cache_manager, "admin:stats:school-1", CacheResult.MISS, duration_ms=8)
        record(cache_manager, "school:1", CacheResult.MISS, source=CacheSource.DATABASE, duration_ms=90)
        record(cache_manager, "school:1", CacheResult.HIT)

        status = await checker.cache_status()

        by_pattern = status["operations"]["by_pattern"]
        assert by_pattern["admin:stats"] == {"count": 2, "hits": 1, "misses": 1, "avg_duration": 6}
        assert by_pattern["school:1"] == {"count": 2, "hits": 1, "misses": 1, "avg_duration": 45}
        assert status["redis"]["avg_latency"] == 6

    @pytest.mark.asyncio
    async def test_no_latency_without_timed_operations(self, checker):
        """Test that avg_latency is None on an empty window."""
        assert (await checker.cache_status())["redis"]["avg_latency"] is None

    @pytest.mark.asyncio
    async def test_recent_operations_are_plain_dicts(self, checker, cache_manager):
        """Test JSON-ready recent entries."""
        record(cache_manager, "school:1", CacheResult.HIT, duration_ms=2)

        recent = (await checker.cache_status())["operations"]["recent"]

        assert recent[-1]["result"] == "HIT"
        assert recent[-1]["source"] == "Redis"

    @pytest.mark.asyncio
    async def test_environment(self, checker, monkeypatch):
        """Test configuration flags without leaking values."""
        monkeypatch.delenv("VERCEL", raising=False)
        monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)

        environment = (await checker.cache_status())["environment"]

        assert environment == {
            "redis_enabled": True,
            "has_redis_url": True,
            "has_redis_token": False,
            "is_serverless": False,
        }

    def test_is_serverless(self, monkeypatch):
        """Test serverless detection."""
        monkeypatch.delenv("VERCEL", raising=False)
        monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)
        assert is_serverless() is False

        monkeypatch.setenv("VERCEL", "1")
        assert is_serverless() is True

        monkeypatch.delenv("VERCEL")
        monkeypatch.setenv("AWS_LAMBDA_FUNCTION_NAME", "school-api")
        assert is_serverless() is True


@pytest.mark.unit
class TestHealthCheck:
    """Test perform_health_check and check_health."""

    @pytest.mark.asyncio
    async def test_healthy(self, checker):
        """Test a connected cache."""
        health = await checker.perform_health_check()

        assert health["status"] == HealthStatus.HEALTHY.value
        assert health["version"] == "1.0.0"
        assert health["checks"]["cache"]["status"] == "healthy"
        assert health["checks"]["cache"]["hit_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_degraded_when_store_fails(self, failing_cache_manager, test_settings):
        """Test that a failing cache degrades but does not fail the service."""
        checker = HealthChecker(cache_manager=failing_cache_manager, settings=test_settings)

        health = await checker.perform_health_check()

        assert health["status"] == HealthStatus.DEGRADED.value
        assert health["checks"]["cache"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_disabled_cache_is_healthy(self, unavailable_cache_manager, test_settings):
        """Test that running without Redis is a supported configuration."""
        checker = HealthChecker(cache_manager=unavailable_cache_manager, settings=test_settings)

        health = await checker.perform_health_check()

        assert health["status"] == HealthStatus.HEALTHY.value
        assert health["checks"]["cache"]["status"] == "disabled"
        assert health["checks"]["cache"]["response_time_ms"] == 0

    @pytest.mark.asyncio
    async def test_timeout_returns_fallback(self, cache_manager, test_settings, monkeypatch):
        """Test that a slow check is abandoned after the race timeout."""
        settings = test_settings.model_copy(update={"HEALTH_CHECK_TIMEOUT_MS": 20})
        checker = HealthChecker(cache_manager=cache_manager, settings=settings)

        async def slow_check():
            await asyncio.sleep(1)
            return {"status": "unhealthy"}

        monkeypatch.setattr(checker, "perform_health_check", slow_check)

        health = await checker.check_health()

        assert health["status"] == "healthy"
        assert health["fallback"] is True
        assert health["checks"]["cache"] == {"status": "healthy", "response_time_ms": 0}

    @pytest.mark.asyncio
    async def test_error_returns_fallback(self, checker, monkeypatch):
        """Test that a failing check never surfaces as an exception."""

        async def broken_check():
            raise RuntimeError("boom")

        monkeypatch.setattr(checker, "perform_health_check", broken_check)

        health = await checker.check_health()

        assert health["fallback"] is True

    @pytest.mark.asyncio
    async def test_result_is_reused(self, checker, monkeypatch):
        """Test that a second call within the cache window does not re-check."""
        calls = []
        original = checker.perform_health_check

        async def counting_check():
            calls.append(True)
            return await original()

        monkeypatch.setattr(checker, "perform_health_check", counting_check)

        first = await checker.check_health()
        second = await checker.check_health()

        assert calls == [True]
        assert second is first

    @pytest.mark.asyncio
    async def test_result_expires(self, cache_manager, test_settings, monkeypatch):
        """Test that a new check runs once the cache window has passed."""
        settings = test_settings.model_copy(update={"HEALTH_CHECK_CACHE_TTL_MS": 10})
        checker = HealthChecker(cache_manager=cache_manager, settings=settings)
        calls = []
        original = checker.perform_health_check

        async def counting_check():
            calls.append(True)
            return await original()

        monkeypatch.setattr(checker, "perform_health_check", counting_check)

        await checker.check_health()
        await asyncio.sleep(0.05)
        await checker.check_health()

        assert len(calls) == 2
