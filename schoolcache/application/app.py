#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Configures the cache service: lifespan wiring of the Redis adapter, cache
manager and health checker, middleware, rate limiting and routes.

Author: Senior Solution Architect
Date: 2025-12-05
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schoolcache.application.api.middleware.error_handler import ErrorHandlingMiddleware
from schoolcache.application.api.routes import admin_router, cache_status_router, health_router
from schoolcache.core.config.constants import HEADER_THREAD_ID, Stage
from schoolcache.core.config.settings import get_settings
from schoolcache.core.exceptions import SchoolCacheError
from schoolcache.core.logging.logger import clear_thread_id, get_logger, set_thread_id, setup_logging
from schoolcache.core.resilience.rate_limiter import setup_rate_limiting
from schoolcache.infrastructure.cache.cache_manager import close_cache, get_cache_manager
from schoolcache.infrastructure.cache.redis_client import close_redis, get_redis_client
from schoolcache.infrastructure.monitoring.health_checker import get_health_checker

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).

    Startup never fails because of Redis: an unreachable or unconfigured
    store only disables the cache.
    """
    settings = get_settings()

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting School Cache Service",
        stage=Stage.INITIALIZATION.value,
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    try:
        redis_client = get_redis_client()
        if redis_client.is_available():
            connected = await redis_client.test_connection()
            logger.info("Redis configured", stage=Stage.INITIALIZATION.value, connected=connected)
        else:
            logger.warning(
                "Redis not configured, cache disabled",
                stage=Stage.INITIALIZATION.value,
                redis_enabled=settings.redis.REDIS_ENABLED,
                has_redis_url=bool(settings.redis.REDIS_URL),
            )

        cache_manager = get_cache_manager()
        app.state.cache_manager = cache_manager
        logger.info("Cache initialized")

        # Entries are registered with cache_manager.register_warm_entry()
        if settings.cache.CACHE_WARMING_INTERVAL_MS > 0:
            cache_manager.start_periodic_warming()

        health_checker = get_health_checker()
        health_checker.initialize(cache_manager)
        app.state.health_checker = health_checker
        logger.info("Health checker ready")

        logger.info("Application startup complete")

        yield

    finally:
        logger.info("Shutting down application")

        await close_cache()
        await close_redis()

        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Fail-open Redis read-through cache with diagnostics endpoints",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware runs in reverse order of registration.

    # 1. Error handling middleware (catches all unhandled exceptions)
    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development")
    )

    # 2. CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_THREAD_ID],
    )

    # 3. Rate limiting (limits are applied per route)
    setup_rate_limiting(app)

    # 4. Thread ID for log correlation
    @app.middleware("http")
    async def thread_id_middleware(request: Request, call_next):
        """
        Inject thread ID into all requests for correlation.
        """
        thread_id = request.headers.get(HEADER_THREAD_ID) or str(uuid.uuid4())
        set_thread_id(thread_id)

        try:
            response = await call_next(request)
            response.headers[HEADER_THREAD_ID] = thread_id
            return response

        finally:
            clear_thread_id()

    @app.exception_handler(SchoolCacheError)
    async def school_cache_exception_handler(request: Request, exc: SchoolCacheError):
        """Handle service exceptions that escaped a route."""
        logger.error(
            f"Service exception: {exc.message}", error_type=type(exc).__name__, thread_id=exc.thread_id
        )

        return JSONResponse(
            status_code=500, content=exc.to_dict(), headers={HEADER_THREAD_ID: exc.thread_id or ""}
        )

    # All API endpoints are prefixed with API_BASE_PATH (default: /api)
    base_path = settings.app.API_BASE_PATH

    app.include_router(health_router, prefix=base_path)
    app.include_router(cache_status_router, prefix=base_path)
    app.include_router(admin_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        """
        Root endpoint with API information.
        """
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app


# Create application instance
app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "schoolcache.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
