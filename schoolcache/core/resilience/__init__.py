"""Resilience patterns: rate limiting."""

from schoolcache.core.resilience.rate_limiter import (
    RateLimitManager,
    get_rate_limit_manager,
    setup_rate_limiting,
)

__all__ = ["RateLimitManager", "get_rate_limit_manager", "setup_rate_limiting"]
