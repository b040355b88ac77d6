"""
Cache Facade

Module-level entry points used by API routes. Each delegates to the global
CacheManager, which is wired to the global Redis adapter. Every function is
fail-open: it never raises because of the cache.

Usage:
------
```python
from schoolcache.infrastructure.cache import CacheKeys, CacheTTL, get_cache, set_cache

stats = await get_cache(CacheKeys.admin_stats())
if stats is None:
    stats = await load_admin_stats()
    await set_cache(CacheKeys.admin_stats(), stats, CacheTTL.ADMIN_STATS)
```
"""

from collections.abc import Callable
from typing import Any

from schoolcache.core.config.constants import DEFAULT_OPERATIONS_LIMIT
from schoolcache.infrastructure.cache.cache_manager import (
    CacheManager,
    close_cache,
    get_cache_manager,
    set_cache_manager,
)
from schoolcache.infrastructure.cache.keys import CacheKeys, CacheTTL
from schoolcache.infrastructure.cache.operation_log import CacheOperation


async def get_cache(key: str) -> Any | None:
    return await get_cache_manager().get(key)


async def set_cache(key: str, value: Any, ttl_ms: int | None = None) -> bool:
    return await get_cache_manager().set(key, value, ttl_ms)


async def get_or_set_cache(
    key: str,
    fetcher: Callable[[], Any],
    ttl_ms: int | None = None,
    stale_while_revalidate: bool = False,
    stale_ttl_ms: int | None = None,
) -> Any:
    return await get_cache_manager().get_or_set(
        key,
        fetcher,
        ttl_ms=ttl_ms,
        stale_while_revalidate=stale_while_revalidate,
        stale_ttl_ms=stale_ttl_ms,
    )


async def invalidate_cache(key: str) -> bool:
    return await get_cache_manager().invalidate(key)


async def invalidate_cache_pattern(pattern: str) -> bool:
    return await get_cache_manager().invalidate_pattern(pattern)


async def clear_cache() -> bool:
    return await get_cache_manager().clear()


def get_cache_stats() -> dict[str, Any]:
    return get_cache_manager().stats()


def get_cache_hit_rate() -> dict[str, Any]:
    return get_cache_manager().hit_rate()


def get_debug_logs() -> list[str]:
    return get_cache_manager().debug_logs()


def get_cache_operations(limit: int = DEFAULT_OPERATIONS_LIMIT) -> list[CacheOperation]:
    return get_cache_manager().operations(limit)


async def warm_cache(
    entries: dict[str, tuple[Callable[[], Any], int | None]] | None = None,
) -> dict[str, list[str]]:
    return await get_cache_manager().warm(entries)


__all__ = [
    "CacheKeys",
    "CacheManager",
    "CacheOperation",
    "CacheTTL",
    "clear_cache",
    "close_cache",
    "get_cache",
    "get_cache_hit_rate",
    "get_cache_manager",
    "get_cache_operations",
    "get_cache_stats",
    "get_debug_logs",
    "get_or_set_cache",
    "invalidate_cache",
    "invalidate_cache_pattern",
    "set_cache",
    "set_cache_manager",
    "warm_cache",
]
