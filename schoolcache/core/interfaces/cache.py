"""
Remote Store Protocol

This module defines the protocol the cache facade depends on, so the facade
can be constructed with the Redis adapter in production and with an
in-memory double in tests.

Architectural Decision: Protocol-based abstraction
- The facade receives its store at construction time (no module global)
- Test doubles need no inheritance, only matching methods

Author: System Architect
Date: 2025-12-08
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RemoteStore(Protocol):
    """
    Protocol for the key-value store behind the cache facade.

    Values are arbitrary JSON-serializable payloads; serialization is the
    store's job. TTLs are in milliseconds.

    Error contract:
    - "not found" is ``None``, never an exception
    - transport failures raise CacheReadError / CacheWriteError
    - partial pattern deletes raise PatternInvalidationError
    """

    def is_available(self) -> bool:
        """
        Whether the store is configured. Must not perform network I/O.
        """
        ...

    async def test_connection(self) -> bool:
        """
        Round-trip a probe key. Never raises.
        """
        ...

    async def get(self, key: str) -> Any | None:
        """
        Get a value.

        Returns:
            Decoded value or None if the key does not exist or has expired

        Raises:
            CacheReadError: If the store could not be read
        """
        ...

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        """
        Store a value with an expiry.

        Raises:
            CacheWriteError: If the value could not be written
        """
        ...

    async def delete(self, key: str) -> int:
        """
        Delete a key.

        Returns:
            int: Number of keys deleted (0 or 1)

        Raises:
            CacheWriteError: If the delete failed
        """
        ...

    async def delete_by_pattern(self, prefix: str) -> int:
        """
        Delete every key starting with ``prefix``.

        Returns:
            int: Number of keys deleted

        Raises:
            PatternInvalidationError: If enumeration or deletion failed part way
        """
        ...

    async def clear_namespace(self) -> int:
        """Delete every key this application owns."""
        ...

    async def health_status(self) -> dict[str, Any]:
        """Cached store health: available, connected, status, last_check."""
        ...
