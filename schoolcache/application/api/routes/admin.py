"""
Cache Admin Routes
==================

Operational endpoints for the cache, all behind the admin token:

- POST /admin/cache/invalidate  drop one key or a ``prefix:*`` pattern
- POST /admin/cache/clear       drop every key in this app's namespace
- GET  /admin/cache/self-test   SET, GET, INVALIDATE, GET on a throwaway key
- GET  /admin/cache/monitor     hit rate by source and the busiest keys

Mutating endpoints use RATE_LIMIT_ADMIN, read endpoints RATE_LIMIT_READ.
Every mutation is logged with the request's thread id for the audit trail.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status

from schoolcache.application.api.dependencies import AdminToken, CacheManagerDep, verify_admin_access
from schoolcache.application.api.models.cache import (
    CacheMonitorResponse,
    ClearResponse,
    InvalidateRequest,
    InvalidateResponse,
    SelfTestResponse,
    top_keys,
)
from schoolcache.core.config.constants import MONITOR_TOP_KEYS, Stage
from schoolcache.core.logging.logger import get_logger
from schoolcache.core.resilience.rate_limiter import get_rate_limit_manager

logger = get_logger(__name__)

rate_limits = get_rate_limit_manager()

# ============================================================================
# ROUTER SETUP
# ============================================================================

router = APIRouter(prefix="/admin/cache", tags=["Admin"])


# ============================================================================
# INVALIDATION
# ============================================================================


@router.post("/invalidate", response_model=InvalidateResponse, status_code=status.HTTP_200_OK)
@rate_limits.limit_admin()
async def invalidate(
    request: Request, payload: InvalidateRequest, cache: CacheManagerDep, admin_token: AdminToken = None
):
    """
    Invalidate a single key or every key under ``prefix:*``.

    ``success`` is False when Redis is unavailable, the delete failed, or the
    pattern was rejected (only one trailing ``*`` is allowed).
    """
    verify_admin_access(admin_token)

    if payload.key is not None:
        success = await cache.invalidate(payload.key)
    else:
        success = await cache.invalidate_pattern(payload.pattern)

    logger.info(
        "Admin cache invalidation",
        stage=Stage.CACHE_INVALIDATE.value,
        cache_key=payload.key,
        pattern=payload.pattern,
        success=success,
    )
    return {"success": success, "key": payload.key, "pattern": payload.pattern}


@router.post("/clear", response_model=ClearResponse, status_code=status.HTTP_200_OK)
@rate_limits.limit_admin()
async def clear(request: Request, cache: CacheManagerDep, admin_token: AdminToken = None):
    """
    Delete every key this application created.

    Scoped to REDIS_KEY_PREFIX; other tenants of a shared Redis are untouched.
    """
    verify_admin_access(admin_token)
    success = await cache.clear()
    logger.warning("Admin cache clear", stage=Stage.CACHE_INVALIDATE.value, success=success)
    return {"success": success}


# ============================================================================
# DIAGNOSTICS
# ============================================================================


@router.get("/self-test", response_model=SelfTestResponse)
@rate_limits.limit_admin()
async def self_test(request: Request, cache: CacheManagerDep, admin_token: AdminToken = None):
    """
    End-to-end cache check: SET, GET (expects a hit), INVALIDATE, GET
    (expects a miss) on a ``test:cache:<ms>`` key, with per-step latency.
    """
    verify_admin_access(admin_token)
    return await cache.self_test()


@router.get("/monitor", response_model=CacheMonitorResponse)
@rate_limits.limit_read()
async def monitor(request: Request, cache: CacheManagerDep, admin_token: AdminToken = None):
    """Hit rate overall, by value source, and for the busiest keys."""
    verify_admin_access(admin_token)

    hit_rate = cache.hit_rate()
    return {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "overall": {
            "hit_rate": hit_rate["hit_rate"],
            "total_hits": hit_rate["hits"],
            "total_misses": hit_rate["misses"],
            "total_requests": hit_rate["total"],
            "redis_available": cache.is_available(),
        },
        "by_source": hit_rate["by_source"],
        "top_keys": top_keys(hit_rate["by_key"], MONITOR_TOP_KEYS),
    }
