"""Tests for request admission control."""

from __future__ import annotations

import asyncio
import inspect

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from file_converter.config import RateLimitSettings, settings_dependency
from file_converter.errors import RateLimited, ServiceError, error_payload
from file_converter.security import FixedWindowRateLimiter, enforce_rate_limit, get_rate_limiter


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_limiter_admits_up_to_limit_then_rejects():
    clock = _Clock()
    limiter = FixedWindowRateLimiter(max_requests=2, interval_sec=60, clock=clock)

    assert limiter.hit("10.0.0.1") == 0
    assert limiter.hit("10.0.0.1") == 0
    clock.now += 15
    assert limiter.hit("10.0.0.1") == 45
    assert limiter.hit("10.0.0.2") == 0


def test_limiter_resets_after_window():
    clock = _Clock()
    limiter = FixedWindowRateLimiter(max_requests=1, interval_sec=60, clock=clock)

    assert limiter.hit("client") == 0
    assert limiter.hit("client") > 0
    clock.now += 60
    assert limiter.hit("client") == 0


def _limited_app(test_settings) -> FastAPI:
    app = FastAPI()

    @app.exception_handler(ServiceError)
    async def _handler(request, exc: ServiceError):
        return JSONResponse(status_code=exc.http_status, content=error_payload(exc))

    @app.post("/convert", dependencies=[Depends(enforce_rate_limit)])
    async def _convert() -> dict:
        return {"ok": True}

    app.dependency_overrides[settings_dependency] = lambda: test_settings
    return app


def test_enforce_rate_limit_returns_429_over_limit(test_settings):
    get_rate_limiter.cache_clear()
    settings = test_settings.model_copy(
        update={"rate_limit": RateLimitSettings(enabled=True, interval_sec=900, max_requests=2)}
    )
    client = TestClient(_limited_app(settings))

    assert client.post("/convert").status_code == 200
    assert client.post("/convert").status_code == 200
    response = client.post("/convert")

    assert response.status_code == 429
    body = response.json()
    assert body["error_code"] == RateLimited.code
    assert body["error"] == "Too many requests from this client, please try again later."
    assert 0 < body["retry_after"] <= 900
    get_rate_limiter.cache_clear()


def test_disabled_rate_limit_admits_everything(test_settings):
    client = TestClient(_limited_app(test_settings))

    for _ in range(5):
        assert client.post("/convert").status_code == 200


def test_rate_limit_dependency_runs_on_event_loop(test_settings):
    get_rate_limiter.cache_clear()
    settings = test_settings.model_copy(
        update={"rate_limit": RateLimitSettings(enabled=True, interval_sec=900, max_requests=20)}
    )
    request = Request({"type": "http", "headers": [(b"x-forwarded-for", b"203.0.113.9, 10.0.0.1")], "client": None})

    async def _burst():
        return await asyncio.gather(
            *(enforce_rate_limit(request, settings) for _ in range(25)), return_exceptions=True
        )

    assert inspect.iscoroutinefunction(enforce_rate_limit)
    results = asyncio.run(_burst())

    assert results.count(None) == 20
    assert sum(isinstance(item, RateLimited) for item in results) == 5
    get_rate_limiter.cache_clear()
