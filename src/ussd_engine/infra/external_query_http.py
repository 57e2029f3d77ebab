"""Adaptador HTTP da ExternalQueryPort.

Contrato REST esperado do backend:
    GET  /accounts/{identity_key}/balance   -> {"balance": "1234.50"}
    POST /identity/verify                   -> {"verified": true}
    GET  /claims/{claim_id}                 -> ClaimRecord (404 = inexistente)
    POST /customers                         -> {"customer_id": "..."} (409/422 = rejeitado)

Falhas de infraestrutura (timeout, 5xx, circuito aberto, resposta
malformada) viram ``ExternalUnavailable``.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from pydantic import ValidationError

from ussd_engine.domain.errors import ExternalUnavailable
from ussd_engine.domain.protocols.external_query import ClaimRecord, ExternalQueryPort
from ussd_engine.infra.http import HttpClient, HttpError
from ussd_engine.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_REGISTRATION_REJECTED_STATUS = frozenset({409, 422})


class HttpExternalQuery(ExternalQueryPort):
    """ExternalQueryPort sobre ``HttpClient`` (retry + circuit breaker)."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def close(self) -> None:
        await self._client.close()

    async def _call(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except HttpError as exc:
            if exc.status_code is not None and not exc.is_retryable:
                raise
            logger.warning(
                "External query unavailable",
                extra={"operation": operation, "status_code": exc.status_code, "error": str(exc)},
            )
            raise ExternalUnavailable(operation, str(exc)) from exc

    @staticmethod
    def _json(operation: str, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalUnavailable(operation, "malformed response") from exc
        if not isinstance(body, dict):
            raise ExternalUnavailable(operation, "malformed response")
        return body

    async def get_balance(self, identity_key: str) -> Decimal:
        try:
            response = await self._call("get_balance", "GET", f"/accounts/{identity_key}/balance")
        except HttpError as exc:
            raise ExternalUnavailable("get_balance", str(exc)) from exc
        body = self._json("get_balance", response)
        try:
            return Decimal(str(body["balance"]))
        except (KeyError, InvalidOperation) as exc:
            raise ExternalUnavailable("get_balance", "malformed response") from exc

    async def verify_identity(self, identity_key: str, credential: str) -> bool:
        try:
            response = await self._call(
                "verify_identity",
                "POST",
                "/identity/verify",
                json={"identity_key": identity_key, "credential": credential},
            )
        except HttpError as exc:
            if exc.status_code in (401, 403):
                return False
            raise ExternalUnavailable("verify_identity", str(exc)) from exc
        return bool(self._json("verify_identity", response).get("verified", False))

    async def lookup_claim(self, claim_id: str) -> ClaimRecord | None:
        try:
            response = await self._call("lookup_claim", "GET", f"/claims/{claim_id}")
        except HttpError as exc:
            if exc.status_code == 404:
                return None
            raise ExternalUnavailable("lookup_claim", str(exc)) from exc
        try:
            return ClaimRecord.model_validate(self._json("lookup_claim", response))
        except ValidationError as exc:
            raise ExternalUnavailable("lookup_claim", "malformed response") from exc

    async def register_customer(
        self,
        identity_key: str,
        full_name: str,
        email: str | None,
        pin: str,
    ) -> str:
        payload = {
            "identity_key": identity_key,
            "full_name": full_name,
            "email": email,
            "pin": pin,
        }
        try:
            response = await self._call("register_customer", "POST", "/customers", json=payload)
        except HttpError as exc:
            if exc.status_code in _REGISTRATION_REJECTED_STATUS:
                msg = f"registration rejected (HTTP {exc.status_code})"
                raise ValueError(msg) from exc
            raise ExternalUnavailable("register_customer", str(exc)) from exc

        customer_id = self._json("register_customer", response).get("customer_id")
        if not customer_id:
            raise ExternalUnavailable("register_customer", "malformed response")
        return str(customer_id)
