"""
Cache Status Route
==================

GET /cache/status reports what the cache is doing right now in THIS process:

- redis: is the store configured, does a probe round-trip succeed, how fast
  recent operations were
- cache: hit/miss/error counts over the last 100 operations
- operations: the last 20 operations and a per-pattern breakdown
- recentLogs: the last 20 debug lines
- environment: which settings are present (never their values)

MULTI-INSTANCE CAVEAT:
----------------------
The operation log is in memory. Behind a load balancer every instance
answers with its own numbers; on serverless platforms a cold instance
reports an empty log. ``environment.isServerless`` flags the latter.

ACCESS:
-------
Admin token required (X-Admin-Token) and rate limited (RATE_LIMIT_READ).
The payload contains cache keys, which may embed user and school ids.
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from schoolcache.application.api.dependencies import AdminToken, HealthCheckerDep, verify_admin_access
from schoolcache.application.api.models.cache import CacheStatusResponse
from schoolcache.core.config.constants import Stage
from schoolcache.core.logging.logger import get_logger
from schoolcache.core.resilience.rate_limiter import get_rate_limit_manager

logger = get_logger(__name__)

rate_limits = get_rate_limit_manager()

# ============================================================================
# ROUTER SETUP
# ============================================================================

router = APIRouter(prefix="/cache", tags=["Cache"])


@router.get(
    "/status",
    response_model=CacheStatusResponse,
    status_code=status.HTTP_200_OK,
    responses={500: {"description": "Status could not be assembled"}},
)
@rate_limits.limit_read()
async def get_cache_status(request: Request, checker: HealthCheckerDep, admin_token: AdminToken = None):
    """
    Cache diagnostics for this instance.

    Runs one probe round-trip against Redis (the reported ``connected``
    flag is live, not cached); everything else is read from memory.

    Returns:
        CacheStatusResponse

    HTTP Status Codes:
        200: Status assembled (even when Redis is down or disabled)
        401/403: Missing or wrong admin token
        429: Rate limit exceeded
        500: ``{"error": "Failed to get cache status", "details": ...}``
    """
    verify_admin_access(admin_token)

    try:
        return await checker.cache_status()
    except Exception as e:
        logger.error(
            "Failed to get cache status",
            stage=Stage.HEALTH.value,
            error_type=type(e).__name__,
            error=str(e),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to get cache status", "details": str(e)},
        )
