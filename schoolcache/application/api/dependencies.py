"""
FastAPI Dependency Injection Module
===================================

Reusable dependencies for the cache routes. Singletons are created once in
the application lifespan and stored on ``app.state``; each provider reads
them from there and falls back to the module-level singleton when the
lifespan has not run (e.g. a bare ``TestClient(app)`` without ``with``).

Tests replace any of these with ``app.dependency_overrides``.
"""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from schoolcache.core.config.constants import HEADER_ADMIN_TOKEN
from schoolcache.core.config.settings import get_settings
from schoolcache.core.logging.logger import get_logger
from schoolcache.infrastructure.cache.cache_manager import CacheManager, get_cache_manager
from schoolcache.infrastructure.monitoring.health_checker import HealthChecker, get_health_checker

logger = get_logger(__name__)

# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_cache_manager_dep(request: Request) -> CacheManager:
    """
    Retrieve the CacheManager from application state.

    Falls back to the global instance for test environments where the
    lifespan did not run.
    """
    if hasattr(request.app.state, "cache_manager"):
        return request.app.state.cache_manager
    return get_cache_manager()


def get_health_checker_dep(
    request: Request,
    cache_manager: Annotated[CacheManager, Depends(get_cache_manager_dep)],
) -> HealthChecker:
    """
    Retrieve the HealthChecker from application state.

    A checker created outside the lifespan is attached to the same cache
    manager the routes use.
    """
    if hasattr(request.app.state, "health_checker"):
        return request.app.state.health_checker

    checker = get_health_checker()
    if not checker.is_initialized:
        checker.initialize(cache_manager)
    return checker


def verify_admin_access(x_admin_token: str | None) -> None:
    """
    Require the admin token on diagnostics and admin endpoints.

    Called as the first statement of each admin route rather than as a
    dependency: FastAPI resolves dependencies before the slowapi wrapper
    runs, and rejected callers must still be rate limited.

    AUTHENTICATION MODEL:
    ---------------------
    The caller sends ``X-Admin-Token``; it is compared in constant time
    against ADMIN_API_TOKEN.

    - ADMIN_API_TOKEN unset: 403 (admin endpoints are closed)
    - header missing: 401
    - token mismatch: 403
    """
    expected = get_settings().app.ADMIN_API_TOKEN

    if not expected:
        logger.warning("Admin endpoint called but ADMIN_API_TOKEN is not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured",
        )

    if not x_admin_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin token required",
        )

    if not secrets.compare_digest(x_admin_token.encode(), expected.encode()):
        logger.warning("Rejected admin token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )


# ============================================================================
# TYPE ALIASES FOR CLEANER ROUTE SIGNATURES
# ============================================================================

CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager_dep)]

HealthCheckerDep = Annotated[HealthChecker, Depends(get_health_checker_dep)]

AdminToken = Annotated[str | None, Header(alias=HEADER_ADMIN_TOKEN)]
