"""
Core Interfaces Module

Protocols that decouple the cache facade from the concrete Redis adapter.

Usage:
------
```python
from schoolcache.core.interfaces import RemoteStore

def build_manager(store: RemoteStore) -> CacheManager:
    return CacheManager(store=store)
```

Author: System Architect
Date: 2025-12-08
"""

from schoolcache.core.interfaces.cache import RemoteStore

__all__ = [
    "RemoteStore",
]
