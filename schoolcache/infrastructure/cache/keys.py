"""
Cache key builders and TTL presets.

Keys are colon-delimited ``domain:subdomain:identifier`` strings. Pattern
invalidation (``school:stats:*``) and the per-pattern statistics (first two
segments) both rely on this convention.
"""

from schoolcache.core.config.settings import get_settings


class CacheKeys:
    """Builders for every key the platform caches."""

    @staticmethod
    def school(school_id: str) -> str:
        return f"school:{school_id}"

    @staticmethod
    def school_stats(school_id: str) -> str:
        return f"school:stats:{school_id}"

    @staticmethod
    def course(course_id: str) -> str:
        return f"course:{course_id}"

    @staticmethod
    def course_metadata(course_id: str) -> str:
        return f"course:metadata:{course_id}"

    @staticmethod
    def user_profile(user_id: str) -> str:
        return f"profile:{user_id}"

    @staticmethod
    def user_role(user_id: str) -> str:
        return f"role:{user_id}"

    @staticmethod
    def student_courses(student_id: str, school_id: str, grade: str) -> str:
        return f"student:courses:{student_id}:{school_id}:{grade}"

    @staticmethod
    def teacher_classes(teacher_id: str, school_id: str | None = None) -> str:
        suffix = f":{school_id}" if school_id else ""
        return f"teacher:classes:{teacher_id}{suffix}"

    @staticmethod
    def admin_stats(scope: str = "global") -> str:
        return f"admin:stats:{scope}"

    @staticmethod
    def homepage_logos() -> str:
        return "logos:homepage"

    @staticmethod
    def success_stories() -> str:
        return "success_stories:published"


class _CacheTTL:
    """
    TTL presets in milliseconds.

    Read from settings on every access so CACHE_TTL_* overrides (and
    reload_settings() in tests) take effect without re-importing.
    """

    @property
    def SHORT(self) -> int:
        return get_settings().CACHE_TTL_SHORT

    @property
    def MEDIUM(self) -> int:
        return get_settings().CACHE_TTL_MEDIUM

    @property
    def LONG(self) -> int:
        return get_settings().CACHE_TTL_LONG

    @property
    def VERY_LONG(self) -> int:
        return get_settings().CACHE_TTL_VERY_LONG

    @property
    def DASHBOARD_STATS(self) -> int:
        return get_settings().CACHE_TTL_DASHBOARD_STATS

    @property
    def USER_DASHBOARD(self) -> int:
        return get_settings().CACHE_TTL_USER_DASHBOARD

    @property
    def ADMIN_STATS(self) -> int:
        return get_settings().CACHE_TTL_ADMIN_STATS

    @property
    def SCHOOL_STATS(self) -> int:
        return get_settings().CACHE_TTL_SCHOOL_STATS

    @property
    def HEALTH_CHECK(self) -> int:
        return get_settings().CACHE_TTL_HEALTH_CHECK


CacheTTL = _CacheTTL()


def key_pattern_group(key: str) -> str:
    """First two colon segments of ``key`` (``admin:stats:global`` -> ``admin:stats``)."""
    return ":".join(key.split(":")[:2])
