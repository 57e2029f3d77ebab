"""Implementação em memória da ExternalQueryPort.

Para desenvolvimento, simulações e testes. ``unavailable = True`` simula
o backend fora do ar (toda operação levanta ``ExternalUnavailable``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from decimal import Decimal

from ussd_engine.domain.errors import ExternalUnavailable
from ussd_engine.domain.protocols.external_query import ClaimRecord, ExternalQueryPort
from ussd_engine.observability.logging import get_logger, mask_identity
from ussd_engine.utils.ids import new_customer_id

logger: logging.Logger = get_logger(__name__)


class InMemoryExternalQuery(ExternalQueryPort):
    """Backend fictício com saldos, PINs, reclamações e clientes."""

    def __init__(
        self,
        balances: Mapping[str, Decimal] | None = None,
        pins: Mapping[str, str] | None = None,
        claims: Mapping[str, ClaimRecord] | None = None,
        latency_seconds: float = 0.0,
    ) -> None:
        self.balances: dict[str, Decimal] = dict(balances or {})
        self.pins: dict[str, str] = dict(pins or {})
        self.claims: dict[str, ClaimRecord] = dict(claims or {})
        self.customers: dict[str, str] = {}
        self.unavailable = False
        self.calls: list[str] = []
        self._latency = latency_seconds

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self._latency:
            await asyncio.sleep(self._latency)
        if self.unavailable:
            raise ExternalUnavailable(operation, "backend offline")

    async def get_balance(self, identity_key: str) -> Decimal:
        await self._enter("get_balance")
        return self.balances.get(identity_key, Decimal("0"))

    async def verify_identity(self, identity_key: str, credential: str) -> bool:
        await self._enter("verify_identity")
        expected = self.pins.get(identity_key)
        return expected is not None and expected == credential

    async def lookup_claim(self, claim_id: str) -> ClaimRecord | None:
        await self._enter("lookup_claim")
        return self.claims.get(claim_id.upper())

    async def register_customer(
        self,
        identity_key: str,
        full_name: str,
        email: str | None,
        pin: str,
    ) -> str:
        await self._enter("register_customer")
        if identity_key in self.customers or identity_key in self.pins:
            msg = "identity already registered"
            raise ValueError(msg)

        customer_id = new_customer_id()
        self.customers[identity_key] = customer_id
        self.pins[identity_key] = pin
        self.balances.setdefault(identity_key, Decimal("0"))
        logger.info(
            "Customer registered (memory)",
            extra={"identity": mask_identity(identity_key), "has_email": email is not None},
        )
        return customer_id
