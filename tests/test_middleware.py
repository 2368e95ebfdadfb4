"""Tests for the rate limit and response time middleware."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from healthchain.core.middleware import RateLimitMiddleware, ResponseTimeMiddleware


def _app(limit: int) -> TestClient:
    app = FastAPI()
    app.add_middleware(ResponseTimeMiddleware)
    app.add_middleware(RateLimitMiddleware, requests_per_minute=limit)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health/live")
    async def live():
        return {"ok": True}

    return TestClient(app)


def test_requests_over_the_limit_get_429_envelope():
    client = _app(limit=2)

    assert client.get("/ping").headers["X-RateLimit-Remaining"] == "1"
    assert client.get("/ping").status_code == 200
    response = client.get("/ping")

    assert response.status_code == 429
    assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert response.json()["data"] is None
    assert response.headers["Retry-After"] == "60"


def test_limit_is_per_client_ip():
    client = _app(limit=1)

    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429


def test_health_probes_are_never_limited():
    client = _app(limit=1)
    client.get("/ping")

    assert client.get("/health/live").status_code == 200


def test_response_time_header():
    response = _app(limit=10).get("/ping")

    assert response.headers["X-Response-Time"].endswith("ms")


def test_idle_client_windows_are_dropped():
    limiter = RateLimitMiddleware(FastAPI(), requests_per_minute=5)

    assert limiter._admit("10.0.0.1", 100.0)
    assert limiter._admit("10.0.0.2", 130.0)
    assert limiter._admit("10.0.0.3", 170.0)

    assert set(limiter.hits) == {"10.0.0.2", "10.0.0.3"}


def test_forwarded_for_can_be_ignored():
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, requests_per_minute=1, trust_forwarded_for=False)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    client = TestClient(app)
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 429
