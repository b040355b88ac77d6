"""
Cache-Related Exceptions

Raised by the Redis store adapter. The cache facade catches every one of
them at its boundary and degrades to a miss or a no-op; they only surface
to callers that talk to the adapter directly (health checks, admin tools).

Author: System Architect
Date: 2025-12-08
"""

from schoolcache.core.exceptions.base import SchoolCacheError


class CacheError(SchoolCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheUnavailableError(CacheError):
    """
    Raised when the remote store is not configured or disabled.

    This is a known operating mode rather than a fault: REDIS_ENABLED is
    false or REDIS_URL is missing.
    """
    pass


class CacheReadError(CacheError):
    """
    Raised when reading a key fails for a reason other than "not found".

    Common causes:
    - Network break or socket timeout
    - Authentication failure
    - Stored value is not valid JSON
    """
    pass


class CacheWriteError(CacheError):
    """
    Raised when SET or DEL fails.

    Common causes:
    - Network break or socket timeout
    - Authentication failure / read-only replica
    - Value cannot be serialized
    """
    pass


class PatternInvalidationError(CacheError):
    """
    Raised when a pattern delete could not complete.

    ``details["deleted"]`` holds the number of keys removed before the
    failure; the remaining keys expire through their TTL.
    """
    pass
