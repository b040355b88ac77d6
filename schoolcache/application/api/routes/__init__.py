from schoolcache.application.api.routes.admin import router as admin_router
from schoolcache.application.api.routes.cache_status import router as cache_status_router
from schoolcache.application.api.routes.health import router as health_router

__all__ = ["admin_router", "cache_status_router", "health_router"]
