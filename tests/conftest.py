"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures.cache_factory import CacheTestFactory  # noqa: E402

ADMIN_TOKEN = "test-admin-token"


# ============================================================================
# Global State Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Drop every module-level singleton after each test.

    Settings are reset too, so a test that patches the environment and
    calls reload_settings() cannot leak into the next one.
    """
    yield

    import schoolcache.core.config.settings as settings_module
    import schoolcache.infrastructure.cache.redis_client as redis_module
    from schoolcache.core.resilience.rate_limiter import get_rate_limit_manager
    from schoolcache.infrastructure.cache.cache_manager import set_cache_manager
    from schoolcache.infrastructure.monitoring.health_checker import reset_health_checker

    set_cache_manager(None)
    reset_health_checker()
    redis_module._redis_client = None
    settings_module._settings = None
    get_rate_limit_manager().reset()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Settings for a configured Redis with fast retries.

    Built explicitly (no .env) so the developer's environment cannot change
    test outcomes.
    """
    from schoolcache.core.config.settings import Settings

    return Settings(
        _env_file=None,
        REDIS_ENABLED=True,
        REDIS_URL="redis://localhost:6379/0",
        REDIS_KEY_PREFIX="test:",
        REDIS_RETRY_ATTEMPTS=2,
        REDIS_RETRY_BASE_DELAY_MS=1,
        REDIS_SCAN_COUNT=2,
        CACHE_OPERATION_LOG_SIZE=200,
        CACHE_DEBUG_LOG_SIZE=100,
        ENVIRONMENT="test",
        ADMIN_API_TOKEN=ADMIN_TOKEN,
    )


@pytest.fixture
def disabled_settings():
    """Settings with Redis switched off."""
    from schoolcache.core.config.settings import Settings

    return Settings(_env_file=None, REDIS_ENABLED=False, REDIS_URL=None, ENVIRONMENT="test")


@pytest.fixture
def admin_env(monkeypatch):
    """Configure the global settings with an admin token and no Redis."""
    from schoolcache.core.config.settings import reload_settings

    monkeypatch.setenv("ADMIN_API_TOKEN", ADMIN_TOKEN)
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.delenv("REDIS_URL", raising=False)
    return reload_settings()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


# ============================================================================
# Environment-Based Integration Toggles
# ============================================================================


@pytest.fixture(scope="session")
def use_real_redis():
    """Check if real Redis should be used for integration tests."""
    return os.getenv("USE_REAL_REDIS", "0").lower() in ("1", "true", "yes")


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def memory_store():
    """In-memory RemoteStore with real TTL semantics."""
    return CacheTestFactory.in_memory_store()


@pytest.fixture
def failing_store():
    """Configured RemoteStore whose every call fails."""
    return CacheTestFactory.failing_store()


@pytest.fixture
def unavailable_store():
    """RemoteStore that reports itself as not configured."""
    return CacheTestFactory.in_memory_store(available=False)


@pytest.fixture
def fake_redis():
    """redis.asyncio client double for adapter tests."""
    return CacheTestFactory.fake_redis()


@pytest.fixture
def redis_client(test_settings, fake_redis):
    """RedisClient wired to FakeRedis."""
    from schoolcache.infrastructure.cache.redis_client import RedisClient

    return RedisClient(settings=test_settings, client=fake_redis)


# ============================================================================
# Cache Manager Fixtures
# ============================================================================


@pytest.fixture
async def cache_manager(memory_store, test_settings):
    """CacheManager over the in-memory store."""
    from schoolcache.infrastructure.cache.cache_manager import CacheManager

    manager = CacheManager(store=memory_store, settings=test_settings)
    yield manager
    await manager.shutdown()


@pytest.fixture
async def failing_cache_manager(failing_store, test_settings):
    """CacheManager whose store fails every call."""
    from schoolcache.infrastructure.cache.cache_manager import CacheManager

    manager = CacheManager(store=failing_store, settings=test_settings)
    yield manager
    await manager.shutdown()


@pytest.fixture
async def unavailable_cache_manager(unavailable_store, test_settings):
    """CacheManager whose store is not configured."""
    from schoolcache.infrastructure.cache.cache_manager import CacheManager

    manager = CacheManager(store=unavailable_store, settings=test_settings)
    yield manager
    await manager.shutdown()
