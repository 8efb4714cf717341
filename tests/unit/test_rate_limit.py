"""Tests for the rate limiting middleware."""

import asyncio
from datetime import datetime, timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from campus.api.middleware.rate_limit import RateLimiter, RateLimitMiddleware
from campus.core.config import get_settings
from campus.core.security import ACCESS, _encode


class StubLimiter(RateLimiter):
    """Allows the first ``budget`` calls per identifier, then refuses."""

    def __init__(self, budget):
        super().__init__(redis_url="redis://localhost:6399/0")
        self.settings = get_settings().model_copy(update={"rate_limit_enabled": True})
        self.budget = budget
        self.calls = []

    async def is_allowed(self, identifier, endpoint="default", limit=None, window=None):
        self.calls.append((identifier, endpoint, limit))
        used = sum(1 for call in self.calls if call[0] == identifier)
        if used > self.budget:
            return False, 0, limit, 9999999999
        return True, limit - used, limit, 9999999999


def _app(limiter):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.post("/api/auth/login")
    def login():
        return {"ok": True}

    @app.get("/api/things")
    def things():
        return {"ok": True}

    return app


def test_login_uses_strict_limit():
    limiter = StubLimiter(budget=1)
    client = TestClient(_app(limiter))

    assert client.post("/api/auth/login").status_code == 200
    response = client.post("/api/auth/login")

    assert response.status_code == 429
    assert response.json()["code"] == "rate_limited"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert int(response.headers["Retry-After"]) >= 1
    assert limiter.calls[0][1:] == ("login", limiter.login_limit)


def test_health_is_not_limited():
    limiter = StubLimiter(budget=0)
    client = TestClient(_app(limiter))
    assert client.get("/health").status_code == 200
    assert limiter.calls == []


def test_bearer_token_selects_account_bucket():
    limiter = StubLimiter(budget=5)
    client = TestClient(_app(limiter))
    token = _encode("0b5c1a3e-0000-4000-8000-000000000001", "jti-1", ACCESS,
                    datetime.utcnow() + timedelta(minutes=5))

    response = client.get("/api/things", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == str(limiter.auth_limit)
    assert limiter.calls[0][:2] == ("0b5c1a3e-0000-4000-8000-000000000001", "auth")


def test_garbage_token_falls_back_to_ip():
    limiter = StubLimiter(budget=5)
    client = TestClient(_app(limiter))
    client.get("/api/things", headers={"Authorization": "Bearer garbage", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
    assert limiter.calls[0][:2] == ("203.0.113.9", "default")


def test_unreachable_redis_fails_open():
    limiter = RateLimiter(redis_url="redis://localhost:6399/0")
    assert asyncio.run(limiter.is_allowed("1.2.3.4", limit=3)) == (True, 3, 3, 0)
