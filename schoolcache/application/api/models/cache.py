"""
Cache API Models
================

Request and response models for the cache diagnostics and admin endpoints.

Internally every payload is built as a snake_case dict. The HTTP contract is
camelCase (``hitRate``, ``lastHealthCheck``), so every model inherits from
``CamelModel``: fields are declared in snake_case and serialized through
their camelCase alias. FastAPI serializes response models by alias, so
routes can return the internal dicts unchanged.

Keys inside ``dict[str, ...]`` fields (``"admin:stats"``, cache keys) are
data, not field names, and are passed through as-is.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# /cache/status
# ============================================================================


class RedisStatus(CamelModel):
    """Remote store connectivity."""

    available: bool = Field(..., description="Store configured and enabled")
    connected: bool = Field(..., description="Probe round-trip succeeded just now")
    health: str = Field(..., description="healthy | unhealthy | unknown")
    last_health_check: str | None = Field(None, description="ISO timestamp of the last probe")
    status: str = Field(..., description="connected | disconnected | disabled")
    avg_latency: int | None = Field(None, description="Mean Redis operation duration (ms)")


class PatternHitRate(CamelModel):
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0


class CacheStatsBlock(CamelModel):
    """
    Cache statistics.

    hits, misses, errors, total_operations and hit_rate cover the recent
    window; the remaining fields come from the whole operation log.
    """

    hits: int = 0
    misses: int = 0
    errors: int = 0
    stale_hits: int = 0
    hit_rate: float = Field(0.0, ge=0, le=100)
    total_operations: int = 0
    by_pattern: dict[str, PatternHitRate] = Field(default_factory=dict)
    redis_available: bool = False
    log_capacity: int = 0
    timestamp: str | None = None


class OperationEntry(CamelModel):
    """One recorded cache operation."""

    timestamp: int = Field(..., description="Epoch milliseconds")
    operation: str
    key: str
    result: str
    duration_ms: float | None = None
    source: str | None = None
    error: str | None = None


class PatternActivity(CamelModel):
    count: int = 0
    hits: int = 0
    misses: int = 0
    avg_duration: int | None = None


class OperationsBlock(CamelModel):
    recent: list[OperationEntry] = Field(default_factory=list)
    total: int = 0
    by_pattern: dict[str, PatternActivity] = Field(default_factory=dict)


class EnvironmentInfo(CamelModel):
    redis_enabled: bool
    has_redis_url: bool
    has_redis_token: bool
    is_serverless: bool


class CacheStatusResponse(CamelModel):
    """Response body of GET /cache/status."""

    redis: RedisStatus
    cache: CacheStatsBlock
    operations: OperationsBlock
    recent_logs: list[str] = Field(default_factory=list)
    environment: EnvironmentInfo


# ============================================================================
# /health
# ============================================================================


class CacheHealthCheck(CamelModel):
    status: str
    response_time_ms: float = 0
    hit_rate: float | None = None
    errors: int | None = None


class HealthChecks(CamelModel):
    cache: CacheHealthCheck


class HealthResponse(CamelModel):
    """Response body of GET /health."""

    status: str = Field(..., description="healthy | degraded | unhealthy")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str | None = None
    checks: HealthChecks
    fallback: bool = Field(False, description="True when the real check did not finish in time")


# ============================================================================
# /admin/cache
# ============================================================================


class InvalidateRequest(CamelModel):
    """Invalidate one key or every key under a ``prefix:*`` pattern."""

    key: str | None = Field(None, min_length=1)
    pattern: str | None = Field(None, min_length=1)

    @model_validator(mode="after")
    def exactly_one_target(self) -> "InvalidateRequest":
        if (self.key is None) == (self.pattern is None):
            raise ValueError("Provide exactly one of 'key' or 'pattern'")
        return self


class InvalidateResponse(CamelModel):
    success: bool
    key: str | None = None
    pattern: str | None = None


class ClearResponse(CamelModel):
    success: bool


class SelfTestStep(CamelModel):
    step: str
    success: bool
    latency_ms: float


class SelfTestResponse(CamelModel):
    success: bool
    redis_available: bool
    key: str
    steps: list[SelfTestStep]


class HitRateBucket(CamelModel):
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0


class KeyHitRate(HitRateBucket):
    key: str


class MonitorOverall(CamelModel):
    hit_rate: float = 0.0
    total_hits: int = 0
    total_misses: int = 0
    total_requests: int = 0
    redis_available: bool = False


class CacheMonitorResponse(CamelModel):
    """Response body of GET /admin/cache/monitor."""

    timestamp: str
    overall: MonitorOverall
    by_source: dict[str, HitRateBucket] = Field(default_factory=dict)
    top_keys: list[KeyHitRate] = Field(default_factory=list)


def top_keys(by_key: dict[str, dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    """Busiest keys first (hits + misses)."""
    ranked = sorted(by_key.items(), key=lambda item: item[1]["hits"] + item[1]["misses"], reverse=True)
    return [{"key": key, **counts} for key, counts in ranked[:limit]]
