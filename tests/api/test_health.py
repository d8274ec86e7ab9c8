from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from certify.main import app


class _DownRedis:
    async def ping(self) -> bool:
        raise RedisConnectionError("connection refused")


class _UpRedis:
    async def ping(self) -> bool:
        return True


@pytest.fixture
def redis_state() -> Iterator[None]:
    previous = getattr(app.state, "redis", None)
    yield
    app.state.redis = previous


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # Neither store is configured under tests
    assert data["checks"]["database"] == "not_configured"
    assert data["checks"]["redis"] == "not_configured"


def test_ready_returns_200_without_database(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200


def test_health_reports_degraded_redis(client: TestClient, redis_state) -> None:
    app.state.redis = _DownRedis()
    data = client.get("/health").json()
    assert data["status"] == "degraded"
    assert data["checks"]["redis"] == "degraded"


def test_redis_outage_does_not_fail_readiness(
    client: TestClient, redis_state
) -> None:
    app.state.redis = _DownRedis()
    assert client.get("/ready").status_code == 200


def test_health_reports_redis_ok(client: TestClient, redis_state) -> None:
    app.state.redis = _UpRedis()
    assert client.get("/health").json()["checks"]["redis"] == "ok"
