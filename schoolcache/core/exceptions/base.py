"""
Base Exception Class

Root of the service's exception tree, plus ConfigurationError. Cache
exceptions live in cache.py.

Errors raised while a request is being handled pick up its X-Thread-ID
automatically, so the JSON error body and the log entry can be matched.

Author: System Architect
Date: 2025-12-08
"""

from typing import Any

from schoolcache.core.logging.logger import get_thread_id


class SchoolCacheError(Exception):
    """
    Base exception for all cache service errors.

    Attributes:
        message: Human-readable error message
        thread_id: Request correlation id (defaults to the current request's)
        details: Structured context such as ``key``, ``prefix`` or ``deleted``

    Example:
        raise CacheReadError(
            "Redis GET failed",
            details={"key": "admin:stats:global", "attempts": 2}
        )
    """

    def __init__(
        self, message: str, thread_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.thread_id = thread_id or get_thread_id()
        self.details = dict(details or {})
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Body of the JSON 500 returned by the SchoolCacheError handler."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "thread_id": self.thread_id,
            "details": self.details,
        }

    def with_context(self, **context) -> "SchoolCacheError":
        """Merge ``context`` into ``details`` and return self."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        parts = [f"message={self.message!r}"]
        if self.thread_id:
            parts.append(f"thread_id={self.thread_id!r}")
        if self.details:
            parts.append(f"details={self.details!r}")
        return f"{type(self).__name__}({', '.join(parts)})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        thread_id: str | None = None,
        **details
    ) -> "SchoolCacheError":
        """
        Wrap a redis-py (or any other) exception.

        The wrapped exception's class name and message are kept in
        ``details`` as ``original_error`` / ``original_message``.

        Example:
            >>> try:
            ...     await client.get(key)
            ... except RedisError as e:
            ...     raise CacheReadError.from_exception(e, key=key)
        """
        return cls(
            message or str(exc),
            thread_id=thread_id,
            details={"original_error": type(exc).__name__, "original_message": str(exc), **details},
        )


class ConfigurationError(SchoolCacheError):
    """Invalid or missing configuration."""
