"""
Exception Module

Structured exception hierarchy for the cache service.

Module Structure:
-----------------
- **base.py**: SchoolCacheError base class + ConfigurationError
- **cache.py**: Remote store exceptions (unavailable, read, write, pattern)

Usage:
------
```python
from schoolcache.core.exceptions import CacheReadError, SchoolCacheError
```

Author: System Architect
Date: 2025-12-08
"""

from schoolcache.core.exceptions.base import ConfigurationError, SchoolCacheError
from schoolcache.core.exceptions.cache import (
    CacheError,
    CacheReadError,
    CacheUnavailableError,
    CacheWriteError,
    PatternInvalidationError,
)

__all__ = [
    "SchoolCacheError",
    "ConfigurationError",
    "CacheError",
    "CacheUnavailableError",
    "CacheReadError",
    "CacheWriteError",
    "PatternInvalidationError",
]
