#!/usr/bin/env python3
"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the cache service.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for operation bookkeeping
- Easy to update and track changes

Author: System Architect
Date: 2025-12-05
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================

class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field of log entries.
    """
    INITIALIZATION = "0"
    CACHE_LOOKUP = "2"
    CACHE_WRITE = "2.W"
    CACHE_INVALIDATE = "2.I"
    RATE_LIMITING = "3"
    REDIS = "REDIS"
    HEALTH = "H"
    LOGGING = "L"


# ============================================================================
# Cache Operation Bookkeeping
# ============================================================================

class CacheOperationType(str, Enum):
    """Operation recorded in the operation log."""
    GET = "GET"
    SET = "SET"
    GET_OR_SET = "GET_OR_SET"
    INVALIDATE = "INVALIDATE"
    INVALIDATE_PATTERN = "INVALIDATE_PATTERN"
    CLEAR = "CLEAR"


class CacheResult(str, Enum):
    """
    Outcome of a cache operation.

    HIT / MISS / STALE_HIT apply to reads, SUCCESS to writes and deletes,
    ERROR to anything that failed talking to the store.
    """
    HIT = "HIT"
    MISS = "MISS"
    STALE_HIT = "STALE_HIT"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class CacheSource(str, Enum):
    """Where the value came from."""
    REDIS = "Redis"
    DATABASE = "Database"


# ============================================================================
# Health States
# ============================================================================

class StoreHealthState(str, Enum):
    """Remote store health as last observed."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class StoreConnectionStatus(str, Enum):
    """Connection status reported by /api/cache/status."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DISABLED = "disabled"


# ============================================================================
# Keys and Headers
# ============================================================================

# Suffix of the long-lived copy kept for stale-while-revalidate
STALE_KEY_SUFFIX = ":stale"

# Keys containing any of these segments get a stale copy on every write
STALE_COPY_MARKERS = (":dashboard:", ":stats:")

# Prefix of the probe key written by the connection test
HEALTH_PROBE_KEY_PREFIX = "health:check:"
HEALTH_PROBE_TTL_MS = 10_000

# Prefix of the key used by the admin self-test
SELF_TEST_KEY_PREFIX = "test:cache:"

# Number of entries shown by the status endpoint
STATUS_RECENT_LIMIT = 20

# Busiest keys listed by the cache monitor
MONITOR_TOP_KEYS = 20

# Operations considered when building the status breakdown
STATUS_WINDOW = 100

# Default number of operations returned by get_cache_operations()
DEFAULT_OPERATIONS_LIMIT = 50

# HTTP headers
HEADER_THREAD_ID = "X-Thread-ID"
HEADER_ADMIN_TOKEN = "X-Admin-Token"
