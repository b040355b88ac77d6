"""
Rate Limiter

Provides per-client rate limiting for the diagnostics and admin endpoints
using slowapi.

Features:
- Per-IP limits (moving window)
- Limits read from settings on every request (RATE_LIMIT_READ, RATE_LIMIT_ADMIN)
- In-memory storage by default; point RATE_LIMIT_STORAGE_URI at Redis to
  share counters across instances
- JSON 429 response with Retry-After
"""

from collections.abc import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from schoolcache.core.config.constants import Stage
from schoolcache.core.config.settings import get_settings
from schoolcache.core.logging import get_logger

logger = get_logger(__name__)


def get_client_identifier(request: Request) -> str:
    """Rate limit key: the client IP."""
    return f"ip:{get_remote_address(request)}"


def read_limit() -> str:
    return get_settings().rate_limit.RATE_LIMIT_READ


def admin_limit() -> str:
    return get_settings().rate_limit.RATE_LIMIT_ADMIN


class RateLimitManager:
    """
    Manages rate limiting for FastAPI.

    Routes decorated with ``limit_read`` / ``limit_admin`` must accept a
    ``request: Request`` parameter (slowapi reads the client from it).
    The limit is checked before the route body runs, so routes that check
    the admin token in their body count rejected callers too.
    """

    def __init__(self):
        self.settings = get_settings()

        self._limiter = Limiter(
            key_func=get_client_identifier,
            storage_uri=self.settings.rate_limit.RATE_LIMIT_STORAGE_URI,
            strategy="moving-window",
            headers_enabled=False
        )

        logger.info(
            "Rate limit manager initialized",
            stage=Stage.RATE_LIMITING.value,
            storage=self.settings.rate_limit.RATE_LIMIT_STORAGE_URI.split(":", 1)[0],
        )

    @property
    def limiter(self) -> Limiter:
        """Get the limiter."""
        return self._limiter

    def setup_app(self, app) -> None:
        """Configure rate limiting for FastAPI application."""
        app.state.limiter = self._limiter
        app.add_exception_handler(RateLimitExceeded, self._rate_limit_handler)

        logger.info("Rate limiting configured for FastAPI app", stage=Stage.RATE_LIMITING.value)

    async def _rate_limit_handler(self, request: Request, exc: RateLimitExceeded) -> Response:
        """Handle rate limit exceeded - return 429 with Retry-After."""
        logger.warning(
            "Rate limit exceeded",
            stage=Stage.RATE_LIMITING.value,
            client=get_client_identifier(request),
            path=request.url.path,
            limit=str(exc.detail),
        )

        response = JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": "Too many requests. Please try again later.",
                "retry_after": 60
            }
        )
        response.headers["Retry-After"] = "60"
        return response

    def limit_read(self) -> Callable:
        """Decorator for read-only diagnostics endpoints."""
        return self._limiter.limit(read_limit)

    def limit_admin(self) -> Callable:
        """Decorator for mutating admin endpoints."""
        return self._limiter.limit(admin_limit)

    def reset(self) -> None:
        """Forget every counter (tests)."""
        self._limiter.reset()


# Global rate limit manager
_rate_manager: RateLimitManager | None = None


def get_rate_limit_manager() -> RateLimitManager:
    """Get global rate limit manager instance."""
    global _rate_manager
    if _rate_manager is None:
        _rate_manager = RateLimitManager()
    return _rate_manager


def setup_rate_limiting(app) -> RateLimitManager:
    """Setup rate limiting for FastAPI application."""
    manager = get_rate_limit_manager()
    manager.setup_app(app)
    return manager
