"""
schoolcache - distributed read-through cache for the school-management platform.

Fronts dashboard statistics and other derived data with a Redis-backed cache
that fails open: a cache outage slows requests down but never breaks them.
"""

__version__ = "1.0.0"
