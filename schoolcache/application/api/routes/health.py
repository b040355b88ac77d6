"""
Health Check Routes
===================

LOAD BALANCER CONTRACT:
-----------------------
GET /health must answer quickly no matter what the cache is doing:

1. The last result is reused for HEALTH_CHECK_CACHE_TTL_MS (5 s), so a
   burst of probes costs one real check.
2. The real check races a HEALTH_CHECK_TIMEOUT_MS (200 ms) timer. If Redis
   is slow the endpoint answers "healthy" with ``fallback: true`` instead of
   hanging the probe.

Status codes: 200 for healthy and degraded (the app works without its
cache), 503 for unhealthy.

GET /health/live is a liveness probe with no dependency checks.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Response, status

from schoolcache.application.api.dependencies import HealthCheckerDep
from schoolcache.application.api.models.cache import HealthResponse
from schoolcache.infrastructure.monitoring.health_checker import HealthStatus

# ============================================================================
# ROUTER SETUP
# ============================================================================

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Unhealthy"}},
)
async def health_check(response: Response, checker: HealthCheckerDep):
    """
    Fast, cached health check for load balancers.

    Returns:
        HealthResponse: Overall status, timestamp and the cache check

    HTTP Status Codes:
        200: healthy or degraded
        503: unhealthy
    """
    result = await checker.check_health()
    if result["status"] == HealthStatus.UNHEALTHY.value:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return result


@router.get("/live")
async def liveness_probe():
    """
    Liveness probe: the process is up and serving requests.

    Deliberately checks nothing else; a slow Redis must never get the
    container restarted.
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}
