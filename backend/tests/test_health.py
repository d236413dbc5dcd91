"""
Noted.AI Backend: Health, Middleware and Error Envelope Tests
=============================================================

What we test:
    ✅ GET /api/health: status, version, database and AI state
    ✅ Unknown route → 404 {"error": "Route not found"}
    ✅ X-Request-ID echoed (client-supplied or generated) and in error bodies
    ✅ Rate limiter: 429 + Retry-After once the window is full; health exempt;
       idle IPs forgotten once per window
    ✅ Unexpected exceptions → 500 "Something went wrong!"
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from noted import __version__
from noted.main import register_exception_handlers
from noted.middleware.rate_limit import RateLimitMiddleware
from noted.middleware.request_id import RequestIDMiddleware


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_ok(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["version"] == __version__
        assert body["database"] == "connected"
        assert body["ai"] == "fallback"
        assert body["uptimeSeconds"] >= 0

    @pytest.mark.asyncio
    async def test_health_reports_provider_state(self, client, fake_llm):
        fake_llm.health = "circuit_open"

        body = (await client.get("/api/health")).json()

        assert body["ai"] == "circuit_open"
        assert body["status"] == "OK"


class TestErrorEnvelope:
    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "Route not found"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        response = await client.get("/api/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_unsafe_request_id_replaced(self, client):
        response = await client.get("/api/health", headers={"X-Request-ID": "bad id with spaces!"})

        assert response.headers["X-Request-ID"] != "bad id with spaces!"
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_request_id_generated_and_in_error_body(self, client):
        response = await client.get("/api/auth/me")

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 8
        assert response.json()["requestId"] == request_id


def _mini_app(max_requests: int = 2) -> FastAPI:
    app = FastAPI()

    @app.get("/api/ping")
    async def ping():
        return {"pong": True}

    @app.get("/api/health")
    async def health():
        return {"status": "OK"}

    @app.get("/api/boom")
    async def boom():
        raise RuntimeError("kaboom")

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=60)
    register_exception_handlers(app)
    return app


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_429_after_window_fills(self):
        transport = ASGITransport(app=_mini_app(max_requests=2))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            assert (await client.get("/api/ping")).status_code == 200
            assert (await client.get("/api/ping")).status_code == 200
            response = await client.get("/api/ping")

        assert response.status_code == 429
        assert response.json()["code"] == "rate_limit_exceeded"
        assert 0 < int(response.headers["Retry-After"]) <= 61
        assert response.json()["details"]["retryAfter"] == int(response.headers["Retry-After"])

    @pytest.mark.asyncio
    async def test_health_is_exempt(self):
        transport = ASGITransport(app=_mini_app(max_requests=1))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(5):
                assert (await client.get("/api/health")).status_code == 200

    def test_idle_ips_forgotten_once_per_window(self):
        limiter = RateLimitMiddleware(app=None, max_requests=5, window_seconds=60)
        limiter._requests["10.0.0.1"] = [1000.0]
        limiter._requests["10.0.0.2"] = [1070.0]
        limiter._last_cleanup = 1000.0

        limiter._maybe_cleanup(now=1030.0)
        assert "10.0.0.1" in limiter._requests

        limiter._maybe_cleanup(now=1075.0)
        assert "10.0.0.1" not in limiter._requests
        assert "10.0.0.2" in limiter._requests
        assert limiter._last_cleanup == 1075.0


class TestUnexpectedError:
    @pytest.mark.asyncio
    async def test_generic_500(self):
        transport = ASGITransport(app=_mini_app(), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/boom")

        assert response.status_code == 500
        assert response.json()["error"] == "Something went wrong!"
        # ENVIRONMENT=test: no exception text in the body
        assert "message" not in response.json()
