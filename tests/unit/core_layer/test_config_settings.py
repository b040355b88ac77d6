"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

import pytest
from pydantic import ValidationError

from schoolcache.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Test default values of each settings group."""

    def test_settings_has_required_attribute_groups(self):
        """Test that Settings exposes every grouped view."""
        settings = Settings(_env_file=None)

        for group in ("redis", "cache", "health", "rate_limit", "logging", "app"):
            assert hasattr(settings, group)

    def test_ttl_presets_are_milliseconds(self):
        """Test TTL preset defaults."""
        cache = Settings(_env_file=None).cache

        assert cache.CACHE_TTL_SHORT == 120_000
        assert cache.CACHE_TTL_MEDIUM == 300_000
        assert cache.CACHE_TTL_LONG == 600_000
        assert cache.CACHE_TTL_VERY_LONG == 900_000
        assert cache.CACHE_TTL_ADMIN_STATS == 600_000
        assert cache.CACHE_TTL_HEALTH_CHECK == 60_000

    def test_health_endpoint_defaults(self):
        """Test the health race timeout and result cache TTL."""
        health = Settings(_env_file=None).health

        assert health.HEALTH_CHECK_TIMEOUT_MS == 200
        assert health.HEALTH_CHECK_CACHE_TTL_MS == 5000

    def test_redis_defaults_keep_keys_namespaced(self):
        """Test that a key prefix is always applied by default."""
        redis = Settings(_env_file=None).redis

        assert redis.REDIS_KEY_PREFIX
        assert redis.REDIS_RETRY_ATTEMPTS == 2
        assert redis.REDIS_SCAN_COUNT == 100

    def test_api_base_path_default(self):
        """Test that routes mount under /api."""
        assert Settings(_env_file=None).app.API_BASE_PATH == "/api"


@pytest.mark.unit
class TestSettingsValidation:
    """Test validation of settings values."""

    def test_log_level_is_normalized(self):
        """Test that LOG_LEVEL is upper-cased."""
        settings = Settings(_env_file=None, LOG_LEVEL="debug")
        assert settings.logging.LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_rejected(self):
        """Test that unknown log levels fail fast."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="VERBOSE")

    def test_invalid_environment_rejected(self):
        """Test that ENVIRONMENT is constrained."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, ENVIRONMENT="qa")


@pytest.mark.unit
class TestSettingsEnvironment:
    """Test environment overrides and the singleton."""

    def test_environment_overrides_ttl(self, monkeypatch):
        """Test that CACHE_TTL_* can be overridden from the environment."""
        monkeypatch.setenv("CACHE_TTL_ADMIN_STATS", "30000")

        settings = reload_settings()

        assert settings.cache.CACHE_TTL_ADMIN_STATS == 30000

    def test_redis_url_from_environment(self, monkeypatch):
        """Test that REDIS_URL and REDIS_TOKEN are read from the environment."""
        monkeypatch.setenv("REDIS_URL", "rediss://cache.example.com:6380")
        monkeypatch.setenv("REDIS_TOKEN", "secret-token")

        settings = reload_settings()

        assert settings.redis.REDIS_URL == "rediss://cache.example.com:6380"
        assert settings.redis.REDIS_TOKEN == "secret-token"

    def test_get_settings_is_singleton(self):
        """Test that get_settings returns the same instance."""
        assert get_settings() is get_settings()

    def test_reload_settings_replaces_instance(self):
        """Test that reload_settings creates a new global instance."""
        first = get_settings()
        second = reload_settings()

        assert first is not second
        assert get_settings() is second
