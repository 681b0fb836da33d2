"""
Tests for the hybrid rate limiter and its FastAPI dependency.

Redis is either switched off or replaced with a MagicMock; the clock is a
plain list the tests advance by hand.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import redis
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from clinic import rate_limiter
from clinic.rate_limiter import HybridRateLimiter, connect_redis, create_rate_limiter, limiter

START = 1_700_000_000


@pytest.fixture
def clock(monkeypatch):
    now = [START]
    monkeypatch.setattr(rate_limiter, "time", SimpleNamespace(time=lambda: now[0]))
    return now


@pytest.fixture
def enabled(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)


@pytest.fixture
def shared_redis():
    client = MagicMock(spec=redis.Redis)
    client.get.return_value = None
    client.ttl.return_value = -2
    return client


def limited_app(**options) -> FastAPI:
    app = FastAPI()
    dependency = create_rate_limiter(
        limit=2,
        window_seconds=60,
        key_prefix="test",
        backend=HybridRateLimiter(use_redis=False),
        **options,
    )

    @app.get("/ping", dependencies=[Depends(dependency)])
    def ping():
        return {"ok": True}

    return app


class TestHybridRateLimiter:
    def test_blocks_after_limit(self, clock):
        backend = HybridRateLimiter(use_redis=False)

        assert backend.hit("k", limit=2, window=60) == (True, 1, 60)
        assert backend.hit("k", limit=2, window=60) == (True, 2, 60)
        assert backend.hit("k", limit=2, window=60) == (False, 2, 60)

    def test_window_resets(self, clock):
        backend = HybridRateLimiter(use_redis=False)
        backend.hit("k", limit=1, window=60)
        clock[0] += 30
        assert backend.hit("k", limit=1, window=60) == (False, 1, 30)

        clock[0] += 30

        assert backend.hit("k", limit=1, window=60) == (True, 1, 60)

    def test_keys_are_independent(self, clock):
        backend = HybridRateLimiter(use_redis=False)
        backend.hit("a", limit=1, window=60)

        assert backend.hit("b", limit=1, window=60)[0] is True

    def test_reset_clears_counters(self, clock):
        backend = HybridRateLimiter(use_redis=False)
        backend.hit("k", limit=1, window=60)

        backend.reset()

        assert backend.hit("k", limit=1, window=60)[0] is True

    def test_seeded_from_redis(self, clock, shared_redis):
        shared_redis.get.return_value = "5"
        shared_redis.ttl.return_value = 30
        backend = HybridRateLimiter(redis_client=shared_redis)

        assert backend.hit("k", limit=6, window=60) == (True, 6, 30)
        assert backend.hit("k", limit=6, window=60) == (False, 6, 30)

    def test_syncs_to_redis_after_interval(self, clock, shared_redis):
        backend = HybridRateLimiter(redis_client=shared_redis)
        backend.hit("k", limit=10, window=60)
        shared_redis.set.assert_not_called()

        clock[0] += rate_limiter.REDIS_SYNC_INTERVAL
        backend.hit("k", limit=10, window=60)

        shared_redis.set.assert_called_once_with("k", 2, ex=60)

    def test_redis_errors_fall_back_to_memory(self, clock, shared_redis):
        shared_redis.get.side_effect = redis.ConnectionError("down")
        shared_redis.set.side_effect = redis.ConnectionError("down")
        backend = HybridRateLimiter(redis_client=shared_redis)

        assert backend.hit("k", limit=1, window=60) == (True, 1, 60)
        clock[0] += rate_limiter.REDIS_SYNC_INTERVAL
        assert backend.hit("k", limit=1, window=60) == (False, 1, 50)

    def test_connects_once(self, clock, monkeypatch):
        connect = MagicMock(return_value=None)
        monkeypatch.setattr(rate_limiter, "connect_redis", connect)
        backend = HybridRateLimiter()

        backend.hit("k", limit=5, window=60)
        backend.hit("k", limit=5, window=60)

        connect.assert_called_once_with()


def test_connect_redis_unreachable(monkeypatch):
    unreachable = MagicMock()
    unreachable.ping.side_effect = redis.ConnectionError("refused")
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.setattr(rate_limiter.redis, "Redis", MagicMock(return_value=unreachable))

    assert connect_redis() is None


class TestRateLimitDependency:
    def test_answers_429_with_retry_after(self, clock, enabled):
        client = TestClient(limited_app())

        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 200
        response = client.get("/ping")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["detail"] == "Too many requests. Please try again in 60 seconds."

    def test_buckets_per_client_ip(self, clock, enabled):
        client = TestClient(limited_app())

        for ip in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
            assert client.get("/ping", headers={"X-Forwarded-For": f"{ip}, 172.16.0.1"}).status_code == 200

    def test_global_bucket(self, clock, enabled):
        client = TestClient(limited_app(use_ip=False))

        statuses = [
            client.get("/ping", headers={"X-Forwarded-For": ip}).status_code
            for ip in ("10.0.0.1", "10.0.0.2", "10.0.0.3")
        ]

        assert statuses == [200, 200, 429]

    def test_disabled(self, clock):
        client = TestClient(limited_app())

        assert [client.get("/ping").status_code for _ in range(5)] == [200] * 5


class TestBookingFormLimit:
    @pytest.fixture(autouse=True)
    def fresh_limiter(self, enabled):
        limiter.reset()
        yield
        limiter.reset()

    def test_booking_form_is_rate_limited(self, client, monkeypatch):
        monkeypatch.setattr(limiter, "_redis_pending", False)
        monkeypatch.setattr(limiter, "_redis", None)

        # Blank submissions still count against the limit
        for _ in range(10):
            assert client.post("/api/public/book-appointment", json={}).status_code == 400
        response = client.post("/api/public/book-appointment", json={})

        assert response.status_code == 429
        assert response.json()["success"] is False
        assert response.json()["message"].startswith("Too many requests")
        assert "Retry-After" in response.headers
