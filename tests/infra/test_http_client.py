"""Testes do HttpClient com httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

from ussd_engine.infra.circuit_breaker import BreakerState
from ussd_engine.infra.http import HttpClient, HttpClientConfig, HttpError


def _client(handler, **overrides) -> HttpClient:
    config = HttpClientConfig(
        base_url="https://backend.test",
        max_retries=overrides.pop("max_retries", 1),
        backoff_base_seconds=0,
        **overrides,
    )
    return HttpClient(config, transport=httpx.MockTransport(handler))


class TestRequest:
    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/ping"
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            response = await client.get("/ping")

        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_retries_transient_status(self):
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            response = await client.post("/customers", json={"a": 1})

        assert response.status_code == 200
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(404)

        async with _client(handler, max_retries=3) as client:
            with pytest.raises(HttpError) as exc_info:
                await client.get("/claims/X")

        assert exc_info.value.status_code == 404
        assert not exc_info.value.is_retryable
        assert len(calls) == 1
        assert client.breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_transport_error_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler, max_retries=0) as client:
            with pytest.raises(HttpError) as exc_info:
                await client.get("/ping")

        assert exc_info.value.is_retryable
        assert exc_info.value.status_code is None


class TestCircuitBreakerIntegration:
    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(500)

        client = _client(handler, max_retries=0, circuit_breaker_fail_max=2)
        for _ in range(2):
            with pytest.raises(HttpError):
                await client.get("/ping")

        with pytest.raises(HttpError, match="Circuit breaker open"):
            await client.get("/ping")

        assert client.breaker.state is BreakerState.OPEN
        assert len(calls) == 2
        await client.close()

    def test_breaker_can_be_disabled(self):
        client = HttpClient(HttpClientConfig(circuit_breaker_enabled=False))

        assert client.breaker is None
