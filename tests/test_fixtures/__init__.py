"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .cache_factory import CacheTestFactory, FailingStore, FakeRedis, InMemoryStore

__all__ = ["CacheTestFactory", "FailingStore", "FakeRedis", "InMemoryStore"]
