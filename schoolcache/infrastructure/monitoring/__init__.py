from schoolcache.infrastructure.monitoring.health_checker import (
    HealthChecker,
    HealthStatus,
    get_health_checker,
)

__all__ = [
    "HealthChecker",
    "HealthStatus",
    "get_health_checker",
]
