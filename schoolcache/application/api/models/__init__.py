"""API request and response models."""

from schoolcache.application.api.models.cache import (
    CacheMonitorResponse,
    CacheStatusResponse,
    ClearResponse,
    HealthResponse,
    InvalidateRequest,
    InvalidateResponse,
    SelfTestResponse,
)

__all__ = [
    "CacheMonitorResponse",
    "CacheStatusResponse",
    "ClearResponse",
    "HealthResponse",
    "InvalidateRequest",
    "InvalidateResponse",
    "SelfTestResponse",
]
