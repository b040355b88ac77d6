#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
cache service. All configuration is centralized here to ensure consistency
across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms (reload_settings)

Author: System Architect
Date: 2025-12-05
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the remote cache store.

    STAGE-0.1: Redis connection configuration

    The store is considered configured only when REDIS_ENABLED is true and a
    REDIS_URL is present. REDIS_TOKEN is sent as the connection password
    (hosted Redis providers issue a token instead of a password).
    """

    REDIS_ENABLED: bool = Field(default=True, description="Master switch for the remote store")
    REDIS_URL: str | None = Field(default=None, description="Redis connection URL (redis:// or rediss://)")
    REDIS_TOKEN: str | None = Field(default=None, description="Access token / password for hosted Redis")
    REDIS_KEY_PREFIX: str = Field(default="schoolcache:", description="Namespace prefix for every key this app writes")

    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=2.0, description="Per-command socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=2.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=60, description="Seconds before a cached health result is re-tested")

    REDIS_RETRY_ATTEMPTS: int = Field(default=2, description="Attempts per read/write (1 = no retry)")
    REDIS_RETRY_BASE_DELAY_MS: int = Field(default=10, description="Initial backoff between attempts")
    REDIS_SCAN_COUNT: int = Field(default=100, description="SCAN COUNT hint used for pattern deletes")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache TTL presets and diagnostics buffer sizes.

    STAGE-2: Cache TTL configuration

    All TTLs are in milliseconds. Each preset can be overridden from the
    environment (e.g. CACHE_TTL_ADMIN_STATS=300000).
    """

    CACHE_TTL_SHORT: int = Field(default=2 * 60 * 1000, description="2 minutes")
    CACHE_TTL_MEDIUM: int = Field(default=5 * 60 * 1000, description="5 minutes (default TTL)")
    CACHE_TTL_LONG: int = Field(default=10 * 60 * 1000, description="10 minutes")
    CACHE_TTL_VERY_LONG: int = Field(default=15 * 60 * 1000, description="15 minutes")
    CACHE_TTL_DASHBOARD_STATS: int = Field(default=10 * 60 * 1000, description="Dashboard statistics")
    CACHE_TTL_USER_DASHBOARD: int = Field(default=5 * 60 * 1000, description="Per-user dashboards")
    CACHE_TTL_ADMIN_STATS: int = Field(default=10 * 60 * 1000, description="Super-admin statistics")
    CACHE_TTL_SCHOOL_STATS: int = Field(default=10 * 60 * 1000, description="Per-school statistics")
    CACHE_TTL_HEALTH_CHECK: int = Field(default=60 * 1000, description="Health-check payloads")

    CACHE_OPERATION_LOG_SIZE: int = Field(default=200, description="Operations kept for diagnostics")
    CACHE_DEBUG_LOG_SIZE: int = Field(default=100, description="Formatted debug lines kept")
    CACHE_STALE_TTL_MULTIPLIER: int = Field(default=2, description="Stale copy lifetime relative to TTL")
    CACHE_WARMING_INTERVAL_MS: int = Field(default=0, description="Periodic warming interval (0 disables)")
    CACHE_WARMING_TIMEOUT_MS: int = Field(default=30_000, description="Cut-off for one warming round")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class HealthSettings(BaseSettings):
    """
    /api/health behaviour.

    STAGE-H: Health endpoint configuration
    """

    HEALTH_CHECK_TIMEOUT_MS: int = Field(default=200, description="Race timeout for the real check")
    HEALTH_CHECK_CACHE_TTL_MS: int = Field(default=5000, description="How long a health result is reused")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Rate limiting configuration.

    STAGE-3: Rate limiting thresholds

    Architectural Decision: slowapi (moving window)
    """

    RATE_LIMIT_READ: str = Field(default="60/minute", description="Diagnostics read endpoints")
    RATE_LIMIT_ADMIN: str = Field(default="20/minute", description="Mutating admin endpoints")
    RATE_LIMIT_STORAGE_URI: str = Field(default="memory://", description="slowapi storage backend")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="School Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for every router")
    ADMIN_API_TOKEN: str | None = Field(default=None, description="Token required by admin endpoints")

    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from schoolcache.core.config.settings import get_settings

        settings = get_settings()
        redis_url = settings.redis.REDIS_URL
        admin_ttl = settings.cache.CACHE_TTL_ADMIN_STATS
    """

    # Redis settings
    REDIS_ENABLED: bool = Field(default=True, description="Master switch for the remote store")
    REDIS_URL: str | None = Field(default=None, description="Redis connection URL (redis:// or rediss://)")
    REDIS_TOKEN: str | None = Field(default=None, description="Access token / password for hosted Redis")
    REDIS_KEY_PREFIX: str = Field(default="schoolcache:", description="Namespace prefix for every key this app writes")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=2.0, description="Per-command socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=2.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=60, description="Seconds before a cached health result is re-tested")
    REDIS_RETRY_ATTEMPTS: int = Field(default=2, description="Attempts per read/write (1 = no retry)")
    REDIS_RETRY_BASE_DELAY_MS: int = Field(default=10, description="Initial backoff between attempts")
    REDIS_SCAN_COUNT: int = Field(default=100, description="SCAN COUNT hint used for pattern deletes")

    # Cache settings
    CACHE_TTL_SHORT: int = Field(default=2 * 60 * 1000, description="2 minutes")
    CACHE_TTL_MEDIUM: int = Field(default=5 * 60 * 1000, description="5 minutes (default TTL)")
    CACHE_TTL_LONG: int = Field(default=10 * 60 * 1000, description="10 minutes")
    CACHE_TTL_VERY_LONG: int = Field(default=15 * 60 * 1000, description="15 minutes")
    CACHE_TTL_DASHBOARD_STATS: int = Field(default=10 * 60 * 1000, description="Dashboard statistics")
    CACHE_TTL_USER_DASHBOARD: int = Field(default=5 * 60 * 1000, description="Per-user dashboards")
    CACHE_TTL_ADMIN_STATS: int = Field(default=10 * 60 * 1000, description="Super-admin statistics")
    CACHE_TTL_SCHOOL_STATS: int = Field(default=10 * 60 * 1000, description="Per-school statistics")
    CACHE_TTL_HEALTH_CHECK: int = Field(default=60 * 1000, description="Health-check payloads")
    CACHE_OPERATION_LOG_SIZE: int = Field(default=200, description="Operations kept for diagnostics")
    CACHE_DEBUG_LOG_SIZE: int = Field(default=100, description="Formatted debug lines kept")
    CACHE_STALE_TTL_MULTIPLIER: int = Field(default=2, description="Stale copy lifetime relative to TTL")
    CACHE_WARMING_INTERVAL_MS: int = Field(default=0, description="Periodic warming interval (0 disables)")
    CACHE_WARMING_TIMEOUT_MS: int = Field(default=30_000, description="Cut-off for one warming round")

    # Health endpoint settings
    HEALTH_CHECK_TIMEOUT_MS: int = Field(default=200, description="Race timeout for the real check")
    HEALTH_CHECK_CACHE_TTL_MS: int = Field(default=5000, description="How long a health result is reused")

    # Rate Limiting settings
    RATE_LIMIT_READ: str = Field(default="60/minute", description="Diagnostics read endpoints")
    RATE_LIMIT_ADMIN: str = Field(default="20/minute", description="Mutating admin endpoints")
    RATE_LIMIT_STORAGE_URI: str = Field(default="memory://", description="slowapi storage backend")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="School Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for every router")
    ADMIN_API_TOKEN: str | None = Field(default=None, description="Token required by admin endpoints")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration objects
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_ENABLED=self.REDIS_ENABLED,
            REDIS_URL=self.REDIS_URL,
            REDIS_TOKEN=self.REDIS_TOKEN,
            REDIS_KEY_PREFIX=self.REDIS_KEY_PREFIX,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_RETRY_ATTEMPTS=self.REDIS_RETRY_ATTEMPTS,
            REDIS_RETRY_BASE_DELAY_MS=self.REDIS_RETRY_BASE_DELAY_MS,
            REDIS_SCAN_COUNT=self.REDIS_SCAN_COUNT,
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            CACHE_TTL_SHORT=self.CACHE_TTL_SHORT,
            CACHE_TTL_MEDIUM=self.CACHE_TTL_MEDIUM,
            CACHE_TTL_LONG=self.CACHE_TTL_LONG,
            CACHE_TTL_VERY_LONG=self.CACHE_TTL_VERY_LONG,
            CACHE_TTL_DASHBOARD_STATS=self.CACHE_TTL_DASHBOARD_STATS,
            CACHE_TTL_USER_DASHBOARD=self.CACHE_TTL_USER_DASHBOARD,
            CACHE_TTL_ADMIN_STATS=self.CACHE_TTL_ADMIN_STATS,
            CACHE_TTL_SCHOOL_STATS=self.CACHE_TTL_SCHOOL_STATS,
            CACHE_TTL_HEALTH_CHECK=self.CACHE_TTL_HEALTH_CHECK,
            CACHE_OPERATION_LOG_SIZE=self.CACHE_OPERATION_LOG_SIZE,
            CACHE_DEBUG_LOG_SIZE=self.CACHE_DEBUG_LOG_SIZE,
            CACHE_STALE_TTL_MULTIPLIER=self.CACHE_STALE_TTL_MULTIPLIER,
            CACHE_WARMING_INTERVAL_MS=self.CACHE_WARMING_INTERVAL_MS,
            CACHE_WARMING_TIMEOUT_MS=self.CACHE_WARMING_TIMEOUT_MS,
        )

    @property
    def health(self) -> 'HealthSettings':
        """Get health endpoint settings."""
        return HealthSettings(
            HEALTH_CHECK_TIMEOUT_MS=self.HEALTH_CHECK_TIMEOUT_MS,
            HEALTH_CHECK_CACHE_TTL_MS=self.HEALTH_CHECK_CACHE_TTL_MS,
        )

    @property
    def rate_limit(self) -> 'RateLimitSettings':
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_READ=self.RATE_LIMIT_READ,
            RATE_LIMIT_ADMIN=self.RATE_LIMIT_ADMIN,
            RATE_LIMIT_STORAGE_URI=self.RATE_LIMIT_STORAGE_URI,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            DEBUG=self.DEBUG,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
            ADMIN_API_TOKEN=self.ADMIN_API_TOKEN,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
