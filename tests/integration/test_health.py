"""Integration tests for GET /health."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError
from redis.exceptions import ConnectionError as RedisConnectionError

from errors import register_error_handlers
from routes.health_routes import router as health_router


def _build_test_app(
    mongo_ok: bool = True,
    redis_ok: bool = True,
    redis_configured: bool = True,
) -> FastAPI:
    """
    Build a minimal FastAPI app with mocked DB/Redis injected via lifespan.
    No real network connections are made.
    """
    mock_db = MagicMock()
    if mongo_ok:
        mock_db.client.admin.command = AsyncMock(return_value={"ok": 1})
    else:
        mock_db.client.admin.command = AsyncMock(
            side_effect=ServerSelectionTimeoutError("connection refused")
        )

    if not redis_configured:
        mock_redis = None
    else:
        mock_redis = AsyncMock()
        if redis_ok:
            mock_redis.ping = AsyncMock(return_value=True)
        else:
            mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("redis down"))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.db = mock_db
        app.state.redis = mock_redis
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(health_router)
    return app


class TestHealthEndpoint:
    def test_healthy_when_both_ok(self):
        app = _build_test_app(mongo_ok=True, redis_ok=True)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["checks"]["mongodb"] == "ok"
        assert body["checks"]["redis"] == "ok"

    def test_unhealthy_when_mongo_fails(self):
        app = _build_test_app(mongo_ok=False, redis_ok=True)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "unhealthy"
        assert body["checks"]["mongodb"] == "error"

    def test_degraded_when_redis_fails(self):
        app = _build_test_app(mongo_ok=True, redis_ok=False)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["checks"]["redis"] == "error"

    def test_healthy_when_redis_not_configured(self):
        app = _build_test_app(mongo_ok=True, redis_configured=False)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["checks"]["redis"] == "not_configured"

    def test_unhealthy_wins_over_degraded(self):
        app = _build_test_app(mongo_ok=False, redis_ok=False)
        with TestClient(app) as client:
            resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"

    def test_response_shape(self):
        app = _build_test_app()
        with TestClient(app) as client:
            resp = client.get("/health")
        body = resp.json()
        assert set(body) == {"status", "checks"}
        assert set(body["checks"]) == {"mongodb", "redis"}
