"""Testes do adaptador HTTP da porta de consultas externas."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from ussd_engine.domain.errors import ExternalUnavailable
from ussd_engine.infra.external_query_http import HttpExternalQuery
from ussd_engine.infra.http import HttpClient, HttpClientConfig

PHONE = "254700000001"
BALANCE_PATH = f"/accounts/{PHONE}/balance"


def _port(routes: dict[tuple[str, str], httpx.Response]) -> HttpExternalQuery:
    def handler(request: httpx.Request) -> httpx.Response:
        return routes.get((request.method, request.url.path), httpx.Response(404))

    config = HttpClientConfig(base_url="https://backend.test", max_retries=0)
    return HttpExternalQuery(HttpClient(config, transport=httpx.MockTransport(handler)))


class TestBalance:
    @pytest.mark.asyncio
    async def test_parses_decimal(self):
        port = _port(
            {("GET", BALANCE_PATH): httpx.Response(200, json={"balance": "80000.50"})}
        )

        assert await port.get_balance(PHONE) == Decimal("80000.50")

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        port = _port({("GET", BALANCE_PATH): httpx.Response(503)})

        with pytest.raises(ExternalUnavailable) as exc_info:
            await port.get_balance(PHONE)
        assert exc_info.value.operation == "get_balance"

    @pytest.mark.asyncio
    async def test_malformed_body_is_unavailable(self):
        port = _port({("GET", BALANCE_PATH): httpx.Response(200, json=["x"])})

        with pytest.raises(ExternalUnavailable):
            await port.get_balance(PHONE)


class TestVerifyIdentity:
    @pytest.mark.asyncio
    async def test_verified(self):
        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(200, json={"verified": True})

        client = HttpClient(
            HttpClientConfig(base_url="https://backend.test", max_retries=0),
            transport=httpx.MockTransport(handler),
        )
        port = HttpExternalQuery(client)

        assert await port.verify_identity(PHONE, "24680") is True
        assert captured == [{"identity_key": PHONE, "credential": "24680"}]
        await port.close()

    @pytest.mark.asyncio
    async def test_unauthorized_means_wrong_credential(self):
        port = _port({("POST", "/identity/verify"): httpx.Response(401)})

        assert await port.verify_identity(PHONE, "00000") is False


class TestClaims:
    @pytest.mark.asyncio
    async def test_found(self):
        port = _port(
            {
                ("GET", "/claims/CLM-1001"): httpx.Response(
                    200, json={"claim_id": "CLM-1001", "status": "open"}
                )
            }
        )

        claim = await port.lookup_claim("CLM-1001")

        assert claim.status == "open"

    @pytest.mark.asyncio
    async def test_not_found(self):
        assert await _port({}).lookup_claim("CLM-0000") is None


class TestRegisterCustomer:
    @pytest.mark.asyncio
    async def test_returns_customer_id(self):
        port = _port({("POST", "/customers"): httpx.Response(201, json={"customer_id": "CUST-1"})})

        assert await port.register_customer(PHONE, "Jane Doe", None, "13579") == "CUST-1"

    @pytest.mark.asyncio
    async def test_conflict_is_business_rejection(self):
        port = _port({("POST", "/customers"): httpx.Response(409)})

        with pytest.raises(ValueError, match="registration rejected"):
            await port.register_customer(PHONE, "Jane Doe", None, "13579")

    @pytest.mark.asyncio
    async def test_unexpected_client_error_is_unavailable(self):
        port = _port({("POST", "/customers"): httpx.Response(400)})

        with pytest.raises(ExternalUnavailable):
            await port.register_customer(PHONE, "Jane Doe", None, "13579")
