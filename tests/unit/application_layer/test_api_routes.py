"""
Unit Tests for API Routes

Tests the FastAPI routes with TestClient: admin token enforcement, the
camelCase status payload, the health endpoints and the admin cache tools.
The cache manager and health checker are swapped in through
dependency_overrides so no Redis is needed.
"""

import orjson
import pytest
from fastapi.testclient import TestClient

from schoolcache.application.api.dependencies import get_cache_manager_dep, get_health_checker_dep
from schoolcache.application.app import create_app
from schoolcache.core.config.constants import CacheOperationType, CacheResult, CacheSource
from schoolcache.core.config.settings import reload_settings
from schoolcache.core.exceptions import ConfigurationError
from schoolcache.infrastructure.cache.cache_manager import CacheManager
from schoolcache.infrastructure.cache.operation_log import CacheOperation
from schoolcache.infrastructure.monitoring.health_checker import HealthChecker
from tests.test_fixtures.cache_factory import InMemoryStore


def record(manager, key, result, duration_ms=None):
    manager.operation_log.record(
        CacheOperation(
            operation=CacheOperationType.GET,
            key=key,
            result=result,
            duration_ms=duration_ms,
            source=CacheSource.REDIS,
        )
    )


class StubHealthChecker:
    """HealthChecker stand-in with canned answers."""

    def __init__(self, health=None, status_error=None):
        self.health = health
        self.status_error = status_error

    async def check_health(self):
        return self.health

    async def cache_status(self):
        raise self.status_error


@pytest.fixture
def manager(test_settings):
    return CacheManager(store=InMemoryStore(), settings=test_settings)


@pytest.fixture
def app(admin_env, manager, test_settings):
    app = create_app()
    checker = HealthChecker(cache_manager=manager, settings=test_settings)
    app.dependency_overrides[get_cache_manager_dep] = lambda: manager
    app.dependency_overrides[get_health_checker_dep] = lambda: checker
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.mark.unit
class TestAdminAccess:
    """Admin token enforcement on diagnostics endpoints."""

    def test_missing_token_is_401(self, client):
        """Test that the status endpoint requires a token."""
        response = client.get("/api/cache/status")

        assert response.status_code == 401
        assert response.json()["detail"] == "Admin token required"

    def test_wrong_token_is_403(self, client):
        """Test that a bad token is rejected."""
        response = client.get("/api/cache/status", headers={"X-Admin-Token": "guess"})

        assert response.status_code == 403

    def test_unconfigured_token_closes_admin_endpoints(self, client, monkeypatch, admin_headers):
        """Test that no ADMIN_API_TOKEN means no admin access at all."""
        monkeypatch.delenv("ADMIN_API_TOKEN")
        reload_settings()

        response = client.get("/api/cache/status", headers=admin_headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access is not configured"

    @pytest.mark.parametrize(
        "method, path",
        [
            ("post", "/api/admin/cache/clear"),
            ("get", "/api/admin/cache/self-test"),
            ("get", "/api/admin/cache/monitor"),
        ],
    )
    def test_admin_router_requires_token(self, client, method, path):
        """Test that every admin cache route is protected."""
        response = getattr(client, method)(path)

        assert response.status_code == 401

    def test_rejected_callers_are_rate_limited(self, client, monkeypatch):
        """Test that requests without a token still use up the rate limit."""
        monkeypatch.setenv("RATE_LIMIT_READ", "2/minute")
        reload_settings()

        codes = [client.get("/api/admin/cache/monitor").status_code for _ in range(3)]

        assert codes == [401, 401, 429]


@pytest.mark.unit
class TestCacheStatusRoute:
    """GET /api/cache/status."""

    def test_status_uses_camel_case(self, client, manager, admin_headers):
        """Test the HTTP field names."""
        record(manager, "admin:stats:global", CacheResult.HIT, duration_ms=3)
        record(manager, "admin:stats:global", CacheResult.MISS, duration_ms=5)

        response = client.get("/api/cache/status", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["redis"]["status"] == "connected"
        assert data["redis"]["lastHealthCheck"] == "2025-12-05T10:00:00Z"
        assert data["redis"]["avgLatency"] == 4
        assert data["cache"]["hitRate"] == 50.0
        assert data["cache"]["totalOperations"] == 2
        assert data["operations"]["byPattern"]["admin:stats"]["avgDuration"] == 4
        assert data["operations"]["recent"][-1]["durationMs"] == 5
        assert isinstance(data["recentLogs"], list)
        assert data["environment"]["isServerless"] in (True, False)
        assert data["environment"]["hasRedisUrl"] is True

    def test_status_failure_returns_error_body(self, app, client, admin_headers):
        """Test the 500 payload when the status cannot be assembled."""
        app.dependency_overrides[get_health_checker_dep] = lambda: StubHealthChecker(
            status_error=RuntimeError("redis exploded")
        )

        response = client.get("/api/cache/status", headers=admin_headers)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to get cache status", "details": "redis exploded"}

    def test_status_is_rate_limited(self, client, admin_headers, monkeypatch):
        """Test 429 with Retry-After once RATE_LIMIT_READ is exhausted."""
        monkeypatch.setenv("RATE_LIMIT_READ", "2/minute")
        reload_settings()

        codes = [client.get("/api/cache/status", headers=admin_headers).status_code for _ in range(3)]

        assert codes == [200, 200, 429]
        limited = client.get("/api/cache/status", headers=admin_headers)
        assert limited.headers["Retry-After"] == "60"
        assert limited.json()["error"] == "rate_limit_exceeded"


@pytest.mark.unit
class TestHealthRoutes:
    """GET /api/health and /api/health/live."""

    def test_health_is_public(self, client):
        """Test that the health check needs no token and reports the cache."""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["checks"]["cache"]["status"] == "healthy"
        assert data["fallback"] is False

    def test_unhealthy_is_503(self, app, client):
        """Test that only an unhealthy status changes the code."""
        app.dependency_overrides[get_health_checker_dep] = lambda: StubHealthChecker(
            health={
                "status": "unhealthy",
                "timestamp": "2025-12-05T10:00:00Z",
                "checks": {"cache": {"status": "unhealthy", "response_time_ms": 150}},
            }
        )

        response = client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["checks"]["cache"]["responseTimeMs"] == 150

    def test_degraded_is_200(self, app, client):
        """Test that a failing cache does not take the service out of rotation."""
        app.dependency_overrides[get_health_checker_dep] = lambda: StubHealthChecker(
            health={
                "status": "degraded",
                "timestamp": "2025-12-05T10:00:00Z",
                "checks": {"cache": {"status": "unhealthy", "response_time_ms": 150}},
            }
        )

        assert client.get("/api/health").status_code == 200

    def test_liveness(self, client):
        """Test the dependency-free liveness probe."""
        response = client.get("/api/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_thread_id_is_echoed(self, client):
        """Test that the correlation header round-trips."""
        response = client.get("/api/health", headers={"X-Thread-ID": "req-123"})

        assert response.headers["X-Thread-ID"] == "req-123"

    def test_thread_id_is_generated(self, client):
        """Test that a correlation id is assigned when the client sends none."""
        response = client.get("/api/health/live")

        assert response.headers["X-Thread-ID"]


@pytest.mark.unit
class TestAdminCacheRoutes:
    """POST/GET /api/admin/cache/*."""

    def test_invalidate_key(self, client, manager, admin_headers):
        """Test single-key invalidation."""
        manager.store.data["school:1"] = orjson.dumps({"name": "A"})

        response = client.post("/api/admin/cache/invalidate", json={"key": "school:1"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "key": "school:1", "pattern": None}
        assert "school:1" not in manager.store.data

    def test_invalidate_pattern(self, client, manager, admin_headers):
        """Test prefix invalidation."""
        for key in ("school:stats:1", "school:stats:2", "school:1"):
            manager.store.data[key] = orjson.dumps(1)

        response = client.post(
            "/api/admin/cache/invalidate", json={"pattern": "school:stats:*"}, headers=admin_headers
        )

        assert response.json()["success"] is True
        assert manager.store.keys() == ["school:1"]

    def test_unsupported_pattern_is_reported(self, client, manager, admin_headers):
        """Test that a rejected pattern is success=false, not an HTTP error."""
        manager.store.data["school:1"] = orjson.dumps(1)

        response = client.post("/api/admin/cache/invalidate", json={"pattern": "*"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert manager.store.keys() == ["school:1"]

    @pytest.mark.parametrize("body", [{}, {"key": "a", "pattern": "b:*"}])
    def test_invalidate_needs_exactly_one_target(self, client, admin_headers, body):
        """Test request validation."""
        response = client.post("/api/admin/cache/invalidate", json=body, headers=admin_headers)

        assert response.status_code == 422

    def test_clear(self, client, manager, admin_headers):
        """Test namespace clear."""
        manager.store.data["school:1"] = orjson.dumps(1)

        response = client.post("/api/admin/cache/clear", headers=admin_headers)

        assert response.json() == {"success": True}
        assert manager.store.keys() == []

    def test_self_test(self, client, admin_headers):
        """Test the four-step round trip."""
        response = client.get("/api/admin/cache/self-test", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["redisAvailable"] is True
        assert [step["step"] for step in data["steps"]] == ["SET", "GET", "INVALIDATE", "GET_AFTER_INVALIDATE"]
        assert "latencyMs" in data["steps"][0]

    def test_monitor(self, client, manager, admin_headers):
        """Test hit rate totals and the busiest keys."""
        record(manager, "school:1", CacheResult.HIT)
        record(manager, "school:1", CacheResult.HIT)
        record(manager, "school:2", CacheResult.MISS)

        response = client.get("/api/admin/cache/monitor", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["overall"]["totalRequests"] == 3
        assert data["overall"]["hitRate"] == 66.67
        assert data["overall"]["redisAvailable"] is True
        assert data["bySource"]["Redis"]["hits"] == 2
        assert data["topKeys"][0] == {"key": "school:1", "hits": 2, "misses": 0, "hitRate": 100.0}


@pytest.mark.unit
class TestRootRoute:
    """GET /."""

    def test_root_lists_entry_points(self, client):
        """Test service information."""
        data = client.get("/").json()

        assert data["version"] == "1.0.0"
        assert data["health"] == "/api/health"


@pytest.mark.unit
class TestErrorHandling:
    """Exceptions that escape a route."""

    def test_unhandled_exception_is_json_500(self, app):
        """Test the catch-all middleware body and correlation header."""

        @app.get("/boom")
        async def boom():
            raise RuntimeError("route bug")

        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/boom", headers={"X-Thread-ID": "req-9"})

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "internal_server_error"
        assert data["error_type"] == "RuntimeError"
        assert data["thread_id"] == "req-9"
        assert "traceback" not in data

    def test_service_error_uses_to_dict(self, app):
        """Test the SchoolCacheError handler."""

        @app.get("/misconfigured")
        async def misconfigured():
            raise ConfigurationError("REDIS_URL is malformed", details={"setting": "REDIS_URL"})

        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/misconfigured", headers={"X-Thread-ID": "req-10"})

        assert response.status_code == 500
        assert response.json() == {
            "error_type": "ConfigurationError",
            "message": "REDIS_URL is malformed",
            "thread_id": "req-10",
            "details": {"setting": "REDIS_URL"},
        }
