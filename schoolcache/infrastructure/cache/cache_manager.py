#!/usr/bin/env python3
"""
Read-Through Cache Facade

Architecture:
    CacheManager (Public API)
        ├── StoreGateway (every store call, errors captured as StoreResult)
        ├── CacheObserver (operation log, debug log, statistics)
        └── RemoteStore (injected, RedisClient in production)

Failure policy: fail-open. Every public method degrades to "the cache is
empty" when the store is unavailable or errors. Callers never see a cache
exception; at worst their request is slower because it recomputes.

Callers own the read-through loop:

    stats = await cache.get(CacheKeys.admin_stats())
    if stats is None:
        stats = await load_admin_stats()
        await cache.set(CacheKeys.admin_stats(), stats, CacheTTL.ADMIN_STATS)

or use get_or_set() which does the same in one call.

Author: Refactored for clarity and maintainability
Date: 2025-12-13
"""

import asyncio
import inspect
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from schoolcache.core.config.constants import (
    DEFAULT_OPERATIONS_LIMIT,
    SELF_TEST_KEY_PREFIX,
    STALE_COPY_MARKERS,
    STALE_KEY_SUFFIX,
    CacheOperationType,
    CacheResult,
    CacheSource,
    Stage,
)
from schoolcache.core.config.settings import Settings, get_settings
from schoolcache.core.exceptions import CacheError
from schoolcache.core.interfaces import RemoteStore
from schoolcache.core.logging.logger import get_logger, log_stage
from schoolcache.infrastructure.cache.keys import key_pattern_group
from schoolcache.infrastructure.cache.operation_log import CacheOperation, DebugLog, OperationLog
from schoolcache.infrastructure.cache.redis_client import get_redis_client

logger = get_logger(__name__)

# "prefix:*" - one trailing wildcard, no other glob characters, non-empty prefix
_PATTERN_RE = re.compile(r"^[^*?\[\]\\]+\*$")


# =============================================================================
# LAYER 1: STORE GATEWAY
# Turns store exceptions into values so the fail-open path is explicit
# =============================================================================


@dataclass(frozen=True)
class StoreResult:
    """Outcome of one store call: a value or an error, plus elapsed time."""

    value: Any = None
    error: CacheError | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class StoreGateway:
    """
    The only place the facade talks to the store.

    Expected failures arrive as CacheError subclasses. Anything else (a
    driver bug, a misbehaving test double) is logged with its traceback and
    wrapped in CacheError, so the facade sees exactly one error type.
    """

    def __init__(self, store: RemoteStore):
        self._store = store

    @property
    def store(self) -> RemoteStore:
        return self._store

    def is_available(self) -> bool:
        try:
            return bool(self._store.is_available())
        except Exception as e:
            logger.error("Store availability check failed", stage=Stage.CACHE_LOOKUP.value, error=str(e))
            return False

    async def call(self, key: str, action: Callable[[], Awaitable[Any]]) -> StoreResult:
        start = time.perf_counter()
        try:
            value = await action()
        except CacheError as e:
            return StoreResult(error=e, duration_ms=_elapsed_ms(start))
        except Exception as e:
            logger.error(
                "Unexpected store failure",
                stage=Stage.CACHE_LOOKUP.value,
                key=key,
                error_type=type(e).__name__,
                exc_info=True,
            )
            return StoreResult(
                error=CacheError.from_exception(e, key=key), duration_ms=_elapsed_ms(start)
            )
        return StoreResult(value=value, duration_ms=_elapsed_ms(start))


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


# =============================================================================
# LAYER 2: OBSERVABILITY
# Operation log, debug log and statistics derived from them
# =============================================================================


class CacheObserver:
    """
    Records every cache operation and derives statistics from the record.

    Statistics are computed from the operation log on each call and are
    therefore bounded by its capacity and local to this process.
    """

    def __init__(self, operation_log: OperationLog, debug_log: DebugLog):
        self._operations = operation_log
        self._debug = debug_log

    @property
    def operations(self) -> OperationLog:
        return self._operations

    @property
    def debug(self) -> DebugLog:
        return self._debug

    def record(
        self,
        operation: CacheOperationType,
        key: str,
        result: CacheResult,
        duration_ms: float | None = None,
        source: CacheSource | None = CacheSource.REDIS,
        error: str | None = None,
    ) -> CacheOperation:
        entry = CacheOperation(
            operation=operation,
            key=key,
            result=result,
            duration_ms=duration_ms,
            source=source,
            error=error,
        )
        self._operations.record(entry)
        self._debug.write(entry.format())

        level = "warning" if result == CacheResult.ERROR else "debug"
        log_stage(
            logger,
            Stage.CACHE_LOOKUP.value,
            f"Cache {operation.value.lower()} {result.value.lower()}",
            level=level,
            cache_key=key,
            duration_ms=duration_ms,
            error=error,
        )
        return entry

    def note(self, message: str) -> None:
        """Write a free-form line to the debug log."""
        self._debug.write(f"[Cache] {message}")

    def get_stats(self, redis_available: bool) -> dict[str, Any]:
        """
        Aggregate hit/miss/error counts from the operation log.

        hit_rate is hits / (hits + misses) * 100, rounded to 2 places.
        STALE_HIT counts as a miss: the caller got old data and a refresh ran.
        """
        entries = self._operations.all()
        hits = misses = errors = stale_hits = 0
        by_pattern: dict[str, dict[str, Any]] = {}

        for entry in entries:
            if entry.result == CacheResult.ERROR:
                errors += 1
                continue
            if entry.result not in (CacheResult.HIT, CacheResult.MISS, CacheResult.STALE_HIT):
                continue

            bucket = by_pattern.setdefault(key_pattern_group(entry.key), {"hits": 0, "misses": 0})
            if entry.result == CacheResult.HIT:
                hits += 1
                bucket["hits"] += 1
            else:
                misses += 1
                bucket["misses"] += 1
                if entry.result == CacheResult.STALE_HIT:
                    stale_hits += 1

        for bucket in by_pattern.values():
            bucket["hit_rate"] = _percent(bucket["hits"], bucket["hits"] + bucket["misses"])

        return {
            "hits": hits,
            "misses": misses,
            "errors": errors,
            "stale_hits": stale_hits,
            "hit_rate": _percent(hits, hits + misses),
            "total_operations": len(entries),
            "by_pattern": by_pattern,
            "redis_available": redis_available,
            "log_capacity": self._operations.capacity,
        }

    def get_hit_rate(self) -> dict[str, Any]:
        """Hit rate broken down by value source and by individual key."""
        entries = self._operations.all()
        hits = misses = 0
        by_source: dict[str, dict[str, Any]] = {}
        by_key: dict[str, dict[str, Any]] = {}

        for entry in entries:
            if entry.result == CacheResult.HIT:
                is_hit = True
            elif entry.result in (CacheResult.MISS, CacheResult.STALE_HIT):
                is_hit = False
            else:
                continue

            source = entry.source.value if entry.source else "unknown"
            for bucket in (
                by_source.setdefault(source, {"hits": 0, "misses": 0}),
                by_key.setdefault(entry.key, {"hits": 0, "misses": 0}),
            ):
                bucket["hits" if is_hit else "misses"] += 1

            if is_hit:
                hits += 1
            else:
                misses += 1

        for bucket in (*by_source.values(), *by_key.values()):
            bucket["hit_rate"] = _percent(bucket["hits"], bucket["hits"] + bucket["misses"])

        return {
            "total": hits + misses,
            "hits": hits,
            "misses": misses,
            "hit_rate": _percent(hits, hits + misses),
            "by_source": by_source,
            "by_key": by_key,
        }


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


# =============================================================================
# LAYER 3: PUBLIC API
# =============================================================================


class CacheManager:
    """
    Fail-open read-through cache over an injected RemoteStore.

    Usage:
        cache = CacheManager(store=RedisClient())

        value = await cache.get("admin:stats:global")
        await cache.set("admin:stats:global", {"schools": 5}, ttl_ms=30_000)
        await cache.invalidate_pattern("admin:stats:*")

        stats = cache.stats()

    Keys containing ":dashboard:" or ":stats:" also get a ``<key>:stale``
    copy with a longer TTL, which get_or_set() can serve while it refreshes
    the real entry in the background.
    """

    def __init__(
        self,
        store: RemoteStore,
        operation_log: OperationLog | None = None,
        debug_log: DebugLog | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize cache manager.

        STAGE-2.0: Cache manager initialization

        Args:
            store: Remote store the cache reads and writes
            operation_log: Operation ring buffer (sized from settings if omitted)
            debug_log: Debug line ring buffer (sized from settings if omitted)
            settings: Settings (defaults to the global instance)
        """
        self._settings = settings or get_settings()
        cache_settings = self._settings.cache

        self._gateway = StoreGateway(store)
        # An empty ring buffer is falsy (it defines __len__)
        if operation_log is None:
            operation_log = OperationLog(cache_settings.CACHE_OPERATION_LOG_SIZE)
        if debug_log is None:
            debug_log = DebugLog(cache_settings.CACHE_DEBUG_LOG_SIZE)
        self._observer = CacheObserver(operation_log, debug_log)
        self._default_ttl_ms = cache_settings.CACHE_TTL_MEDIUM
        self._stale_multiplier = cache_settings.CACHE_STALE_TTL_MULTIPLIER
        self._warming_interval_ms = cache_settings.CACHE_WARMING_INTERVAL_MS
        self._warming_timeout_ms = cache_settings.CACHE_WARMING_TIMEOUT_MS
        self._background: set[asyncio.Task] = set()
        self._warm_entries: dict[str, tuple[Callable[[], Any], int | None]] = {}
        self._warming_task: asyncio.Task | None = None

        logger.info(
            "Cache manager initialized",
            stage="2.0",
            default_ttl_ms=self._default_ttl_ms,
            operation_log_size=self._observer.operations.capacity,
        )

    @property
    def store(self) -> RemoteStore:
        return self._gateway.store

    @property
    def operation_log(self) -> OperationLog:
        return self._observer.operations

    def is_available(self) -> bool:
        return self._gateway.is_available()

    async def shutdown(self) -> None:
        """
        Cancel in-flight background refreshes.

        STAGE-2.0.2: Cache manager shutdown

        Also stops periodic warming.
        """
        await self.stop_periodic_warming()

        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
        logger.info("Cache manager shutdown", stage="2.0.2", cancelled_refreshes=len(tasks))

    # -------------------------------------------------------------------------
    # Core Cache Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """
        Read a key.

        STAGE-2.1: Cache lookup

        Returns:
            Cached value, or None on miss, on error and when the store is
            unavailable. Only reads that reach the store are recorded.
        """
        if not self._gateway.is_available():
            self._observer.note(f"GET {key} - skipped, Redis not available")
            return None

        result = await self._gateway.call(key, lambda: self.store.get(key))
        if not result.ok:
            self._observer.record(
                CacheOperationType.GET, key, CacheResult.ERROR,
                duration_ms=result.duration_ms, error=result.error.message,
            )
            return None

        outcome = CacheResult.MISS if result.value is None else CacheResult.HIT
        self._observer.record(CacheOperationType.GET, key, outcome, duration_ms=result.duration_ms)
        return result.value

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> bool:
        """
        Write a key.

        STAGE-2.W: Cache population

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl_ms: Time-to-live in milliseconds (defaults to CACHE_TTL_MEDIUM)

        Returns:
            True if the write reached the store. Failures are recorded and
            logged, never raised.
        """
        ttl_ms = ttl_ms if ttl_ms is not None else self._default_ttl_ms
        if not self._gateway.is_available():
            self._observer.note(f"SET {key} - skipped, Redis not available")
            return False

        stored = await self._write(CacheOperationType.SET, key, value, ttl_ms)
        if stored and any(marker in key for marker in STALE_COPY_MARKERS):
            await self._write_stale(key, value, ttl_ms * self._stale_multiplier)
        return stored

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Any],
        ttl_ms: int | None = None,
        stale_while_revalidate: bool = False,
        stale_ttl_ms: int | None = None,
    ) -> Any:
        """
        Return the cached value or compute, store and return it.

        STAGE-2.5: Read-through

        With ``stale_while_revalidate`` a miss first looks for the
        ``<key>:stale`` copy; if present it is returned immediately and the
        fetcher runs in a background task that rewrites both copies.

        Exceptions raised by ``fetcher`` propagate: they belong to the
        caller's primary data source, not to the cache.

        Args:
            key: Cache key
            fetcher: Sync or async callable producing the fresh value
            ttl_ms: TTL for the fresh value (defaults to CACHE_TTL_MEDIUM)
            stale_while_revalidate: Serve the stale copy while refreshing
            stale_ttl_ms: TTL for the stale copy (defaults to ttl_ms * 2)
        """
        ttl_ms = ttl_ms if ttl_ms is not None else self._default_ttl_ms
        stale_ttl_ms = stale_ttl_ms if stale_ttl_ms is not None else ttl_ms * self._stale_multiplier

        if not self._gateway.is_available():
            self._observer.note(f"GET_OR_SET {key} - Redis not available, fetching directly")
            return await _resolve(fetcher)

        result = await self._gateway.call(key, lambda: self.store.get(key))
        if result.ok and result.value is not None:
            self._observer.record(
                CacheOperationType.GET_OR_SET, key, CacheResult.HIT, duration_ms=result.duration_ms
            )
            return result.value

        if not result.ok:
            self._observer.record(
                CacheOperationType.GET_OR_SET, key, CacheResult.ERROR,
                duration_ms=result.duration_ms, error=result.error.message,
            )

        # One MISS or STALE_HIT per lookup; the value comes from the fetcher
        if stale_while_revalidate:
            stale_key = f"{key}{STALE_KEY_SUFFIX}"
            stale = await self._gateway.call(stale_key, lambda: self.store.get(stale_key))
            if stale.ok and stale.value is not None:
                self._observer.record(
                    CacheOperationType.GET_OR_SET, key, CacheResult.STALE_HIT,
                    duration_ms=stale.duration_ms, source=CacheSource.DATABASE,
                )
                self._schedule_refresh(key, fetcher, ttl_ms, stale_ttl_ms)
                return stale.value

        self._observer.record(
            CacheOperationType.GET_OR_SET, key, CacheResult.MISS, source=CacheSource.DATABASE
        )

        start = time.perf_counter()
        value = await _resolve(fetcher)
        self._observer.note(f"GET_OR_SET {key} - fetched in {_elapsed_ms(start):g}ms")

        if value is not None:
            await self._store_fresh(key, value, ttl_ms, stale_ttl_ms, force_stale=stale_while_revalidate)
        return value

    async def invalidate(self, key: str) -> bool:
        """
        Delete one key.

        STAGE-2.I: Cache invalidation

        Awaited before returning so the caller's response goes out after the
        stale entry is gone. The ``<key>:stale`` copy is deleted as well, so
        stale-while-revalidate cannot serve invalidated data. Returns False
        if the delete of the key itself did not happen.
        """
        if not self._gateway.is_available():
            self._observer.note(f"INVALIDATE {key} - skipped, Redis not available")
            return False

        result = await self._gateway.call(key, lambda: self.store.delete(key))
        if not result.ok:
            self._observer.record(
                CacheOperationType.INVALIDATE, key, CacheResult.ERROR,
                duration_ms=result.duration_ms, error=result.error.message,
            )
            return False

        self._observer.record(
            CacheOperationType.INVALIDATE, key, CacheResult.SUCCESS, duration_ms=result.duration_ms
        )

        stale_key = f"{key}{STALE_KEY_SUFFIX}"
        stale = await self._gateway.call(stale_key, lambda: self.store.delete(stale_key))
        if not stale.ok:
            self._observer.note(f"INVALIDATE {stale_key} - stale copy not deleted: {stale.error.message}")
        return True

    async def invalidate_pattern(self, pattern: str) -> bool:
        """
        Delete every key matching ``prefix:*``.

        STAGE-2.I: Pattern invalidation

        Only a single trailing ``*`` is supported; the rest of the pattern is
        matched literally. Anything else (``a*b``, ``a:?``, a bare ``*``) is
        rejected and returns False.

        Returns:
            True only if every matching key was deleted. On partial failure
            the remaining keys expire through their TTL.
        """
        if not _PATTERN_RE.match(pattern):
            logger.warning("Rejected invalidation pattern", stage=Stage.CACHE_INVALIDATE.value, pattern=pattern)
            self._observer.record(
                CacheOperationType.INVALIDATE_PATTERN, pattern, CacheResult.ERROR,
                source=None, error="pattern must be 'prefix*' with a single trailing wildcard",
            )
            return False

        if not self._gateway.is_available():
            self._observer.note(f"INVALIDATE_PATTERN {pattern} - skipped, Redis not available")
            return False

        prefix = pattern[:-1]
        result = await self._gateway.call(pattern, lambda: self.store.delete_by_pattern(prefix))
        if not result.ok:
            self._observer.record(
                CacheOperationType.INVALIDATE_PATTERN, pattern, CacheResult.ERROR,
                duration_ms=result.duration_ms, error=result.error.message,
            )
            return False

        self._observer.record(
            CacheOperationType.INVALIDATE_PATTERN, pattern, CacheResult.SUCCESS,
            duration_ms=result.duration_ms,
        )
        self._observer.note(f"INVALIDATE_PATTERN {pattern} - deleted {result.value} keys")
        return True

    async def clear(self) -> bool:
        """
        Delete every key this application created.

        Scoped to the REDIS_KEY_PREFIX namespace, never FLUSHALL.
        """
        if not self._gateway.is_available():
            self._observer.note("CLEAR - skipped, Redis not available")
            return False

        result = await self._gateway.call("*", self.store.clear_namespace)
        if not result.ok:
            self._observer.record(
                CacheOperationType.CLEAR, "*", CacheResult.ERROR,
                duration_ms=result.duration_ms, error=result.error.message,
            )
            return False

        self._observer.record(CacheOperationType.CLEAR, "*", CacheResult.SUCCESS, duration_ms=result.duration_ms)
        self._observer.note(f"CLEAR - deleted {result.value} keys")
        return True

    # -------------------------------------------------------------------------
    # Cache Warming
    # -------------------------------------------------------------------------

    def register_warm_entry(self, key: str, fetcher: Callable[[], Any], ttl_ms: int | None = None) -> None:
        """
        Add a key to the set warmed by warm() and periodic warming.

        Registering the same key again replaces its fetcher and TTL.
        """
        self._warm_entries[key] = (fetcher, ttl_ms)

    async def warm(
        self, entries: dict[str, tuple[Callable[[], Any], int | None]] | None = None
    ) -> dict[str, list[str]]:
        """
        Pre-populate keys so the first real request is a hit.

        STAGE-2.W: Cache warming

        For each key: skip it if it is already cached, otherwise fetch, set
        and read it back. A key counts as warmed only when the read-back
        finds it. Fetcher errors are logged and the key is reported as
        failed; warming never raises.

        Args:
            entries: ``{key: (fetcher, ttl_ms)}``; defaults to the registered entries

        Returns:
            ``{"warmed": [...], "skipped": [...], "failed": [...]}``
        """
        entries = entries if entries is not None else dict(self._warm_entries)
        report: dict[str, list[str]] = {"warmed": [], "skipped": [], "failed": []}

        if not self._gateway.is_available():
            self._observer.note(f"WARM {len(entries)} keys - skipped, Redis not available")
            report["failed"] = list(entries)
            return report

        start = time.perf_counter()
        for key, (fetcher, ttl_ms) in entries.items():
            if await self.get(key) is not None:
                report["skipped"].append(key)
                continue

            try:
                value = await _resolve(fetcher)
            except Exception as e:
                logger.warning(
                    "Cache warming fetch failed", stage=Stage.CACHE_WRITE.value, cache_key=key, error=str(e)
                )
                report["failed"].append(key)
                continue

            if value is None or not await self.set(key, value, ttl_ms):
                report["failed"].append(key)
            elif await self.get(key) is not None:
                report["warmed"].append(key)
            else:
                logger.warning("Cache warming not verified", stage=Stage.CACHE_WRITE.value, cache_key=key)
                report["failed"].append(key)

        logger.info(
            "Cache warming completed",
            stage=Stage.CACHE_WRITE.value,
            duration_ms=_elapsed_ms(start),
            **{name: len(keys) for name, keys in report.items()},
        )
        return report

    def start_periodic_warming(self, interval_ms: int | None = None) -> asyncio.Task:
        """
        Warm the registered entries now and then every ``interval_ms``.

        Defaults to CACHE_WARMING_INTERVAL_MS. A running warming task is
        replaced. Each round is cut off after CACHE_WARMING_TIMEOUT_MS.
        """
        interval_ms = interval_ms if interval_ms is not None else self._warming_interval_ms
        if interval_ms <= 0:
            raise ValueError("warming interval must be positive")

        if self._warming_task is not None:
            self._warming_task.cancel()

        self._warming_task = asyncio.create_task(self._warm_periodically(interval_ms / 1000))
        logger.info("Started periodic cache warming", stage=Stage.CACHE_WRITE.value, interval_ms=interval_ms)
        return self._warming_task

    async def stop_periodic_warming(self) -> None:
        task, self._warming_task = self._warming_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Stopped periodic cache warming", stage=Stage.CACHE_WRITE.value)

    @property
    def is_warming_active(self) -> bool:
        return self._warming_task is not None and not self._warming_task.done()

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Point-in-time statistics computed from the operation log."""
        return {
            **self._observer.get_stats(redis_available=self._gateway.is_available()),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    def hit_rate(self) -> dict[str, Any]:
        return self._observer.get_hit_rate()

    def operations(self, limit: int = DEFAULT_OPERATIONS_LIMIT) -> list[CacheOperation]:
        """Last ``limit`` operations, newest last."""
        return self._observer.operations.recent(limit)

    def debug_logs(self, limit: int | None = None) -> list[str]:
        """Formatted debug lines, newest last."""
        if limit is None:
            return self._observer.debug.all()
        return self._observer.debug.recent(limit)

    async def self_test(self) -> dict[str, Any]:
        """
        Exercise SET, GET, INVALIDATE and GET again on a throwaway key.

        Used by the admin self-test endpoint. Runs through the public API so
        the operations show up in the log like real traffic.
        """
        key = f"{SELF_TEST_KEY_PREFIX}{int(time.time() * 1000)}"
        payload = {"test": True, "written_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}
        steps: list[dict[str, Any]] = []

        async def step(name: str, action: Callable[[], Awaitable[Any]], check: Callable[[Any], bool]) -> None:
            start = time.perf_counter()
            outcome = await action()
            steps.append({"step": name, "success": check(outcome), "latency_ms": _elapsed_ms(start)})

        await step("SET", lambda: self.set(key, payload, 60_000), lambda ok: ok is True)
        await step("GET", lambda: self.get(key), lambda value: value == payload)
        await step("INVALIDATE", lambda: self.invalidate(key), lambda ok: ok is True)
        await step("GET_AFTER_INVALIDATE", lambda: self.get(key), lambda value: value is None)

        return {
            "success": all(s["success"] for s in steps),
            "redis_available": self._gateway.is_available(),
            "key": key,
            "steps": steps,
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _write(self, operation: CacheOperationType, key: str, value: Any, ttl_ms: int) -> bool:
        result = await self._gateway.call(key, lambda: self.store.set(key, value, ttl_ms))
        if not result.ok:
            self._observer.record(
                operation, key, CacheResult.ERROR, duration_ms=result.duration_ms, error=result.error.message
            )
            return False
        self._observer.record(operation, key, CacheResult.SUCCESS, duration_ms=result.duration_ms)
        return True

    async def _write_stale(self, key: str, value: Any, ttl_ms: int) -> None:
        stale_key = f"{key}{STALE_KEY_SUFFIX}"
        result = await self._gateway.call(stale_key, lambda: self.store.set(stale_key, value, ttl_ms))
        if not result.ok:
            self._observer.note(f"SET {stale_key} - stale copy not written: {result.error.message}")

    async def _store_fresh(
        self, key: str, value: Any, ttl_ms: int, stale_ttl_ms: int, force_stale: bool
    ) -> None:
        stored = await self._write(CacheOperationType.GET_OR_SET, key, value, ttl_ms)
        if stored and (force_stale or any(marker in key for marker in STALE_COPY_MARKERS)):
            await self._write_stale(key, value, stale_ttl_ms)

    def _schedule_refresh(self, key: str, fetcher: Callable[[], Any], ttl_ms: int, stale_ttl_ms: int) -> None:
        task = asyncio.create_task(self._refresh(key, fetcher, ttl_ms, stale_ttl_ms))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh(self, key: str, fetcher: Callable[[], Any], ttl_ms: int, stale_ttl_ms: int) -> None:
        try:
            value = await _resolve(fetcher)
        except Exception as e:
            # Nobody awaits this task; the stale copy stays until its TTL.
            logger.warning("Background refresh failed", stage="2.5", cache_key=key, error=str(e))
            self._observer.note(f"GET_OR_SET {key} - background refresh failed: {e}")
            return
        if value is not None:
            await self._store_fresh(key, value, ttl_ms, stale_ttl_ms, force_stale=True)

    async def _warm_periodically(self, interval_s: float) -> None:
        # Rounds run back to back in this one task, so they never overlap
        timeout_s = self._warming_timeout_ms / 1000
        while True:
            try:
                await asyncio.wait_for(self.warm(), timeout=timeout_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "Cache warming timed out", stage=Stage.CACHE_WRITE.value, timeout_ms=self._warming_timeout_ms
                )
            await asyncio.sleep(interval_s)


async def _resolve(fetcher: Callable[[], Any]) -> Any:
    value = fetcher()
    if inspect.isawaitable(value):
        value = await value
    return value


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_cache_manager: CacheManager | None = None


def get_cache_manager() -> CacheManager:
    """
    Get the global cache manager, wired to the global Redis adapter.

    Returns:
        CacheManager: Global cache manager instance
    """
    global _cache_manager

    if _cache_manager is None:
        _cache_manager = CacheManager(store=get_redis_client())

    return _cache_manager


def set_cache_manager(manager: CacheManager | None) -> None:
    """Replace the global cache manager (tests, alternative wiring)."""
    global _cache_manager
    _cache_manager = manager


async def close_cache() -> None:
    """Shutdown the global cache manager."""
    global _cache_manager

    if _cache_manager:
        await _cache_manager.shutdown()
        _cache_manager = None
