#!/usr/bin/env python3
"""
Structured Logging Module using structlog

Every log entry of the cache service carries:
- ``thread_id``: the X-Thread-ID of the HTTP request that caused it
- ``stage``: where in the cache flow it happened (``2`` lookup, ``2.W``
  write, ``2.I`` invalidation, ``REDIS.*`` adapter, ``H.*`` health)
- ``timestamp``: ISO 8601 UTC

Redis URLs are scrubbed of their ``user:password@`` part before rendering,
and fields logged as ``None`` (no error, no duration) are dropped.

Author: System Architect
Date: 2025-12-05
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from schoolcache.core.config.settings import get_settings

# Request-local correlation id, set by the thread-id middleware
thread_id_ctx: ContextVar[str | None] = ContextVar("thread_id", default=None)

_REDIS_CREDENTIALS = re.compile(r"(rediss?://)([^@/\s]*)@")


def add_thread_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """STAGE-L.1: Copy the request thread id into the event."""
    thread_id = thread_id_ctx.get()
    if thread_id:
        event_dict["thread_id"] = thread_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """STAGE-L.2: ISO 8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def drop_none_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    STAGE-L.3: Remove keys whose value is None.

    Cache operations log ``error`` and ``duration_ms`` unconditionally;
    a successful lookup should not print ``error=None``.
    """
    return {key: value for key, value in event_dict.items() if value is not None}


def redact_credentials(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    STAGE-L.4: Mask credentials in Redis URLs.

    Checks the message and every string field: redis-py connection errors
    echo the URL they were given, password included.
    """
    for field, value in event_dict.items():
        if isinstance(value, str) and "redis" in value:
            event_dict[field] = _REDIS_CREDENTIALS.sub(r"\1[REDACTED]@", value)
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """STAGE-L.5: Upper-case level names (``WARNING`` not ``warning``)."""
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog for the cache service.

    STAGE-L: Logging initialization

    Called once from the application lifespan. Arguments default to
    LOG_LEVEL and LOG_FORMAT from settings.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: 'json' for log shippers, 'console' for local development
    """
    settings = get_settings()
    log_level = (log_level or settings.logging.LOG_LEVEL).upper()
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level))

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_thread_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            drop_none_fields,
            redact_credentials,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Module logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("Cache hit", stage="2", cache_key="admin:stats:global")
    """
    return structlog.get_logger(name)


def set_thread_id(thread_id: str) -> None:
    """Bind the request's X-Thread-ID for every log entry it produces."""
    thread_id_ctx.set(thread_id)


def get_thread_id() -> str | None:
    return thread_id_ctx.get()


def clear_thread_id() -> None:
    thread_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log ``message`` at ``level`` with a ``stage`` field.

    Usage:
        log_stage(logger, "2", "Cache get hit", level="debug", cache_key="school:42")
    """
    getattr(logger, level.lower())(message, stage=stage, **kwargs)
