"""Porta de consultas externas usada pelos guards de domínio.

Interface leve (ABC) dependida pelo engine; adaptadores ficam em infra.
Toda operação pode levantar ``ExternalUnavailable``, que os guards tratam
como negação retentável, nunca como negação de negócio.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from pydantic import BaseModel


class ClaimRecord(BaseModel):
    """Registro de reclamação/protocolo retornado pelo backend."""

    claim_id: str
    status: str
    description: str | None = None


class ExternalQueryPort(ABC):
    """Contrato assíncrono para saldo, identidade, reclamações e cadastro."""

    @abstractmethod
    async def get_balance(self, identity_key: str) -> Decimal:
        """Retorna o saldo disponível da identidade.

        Raises:
            ExternalUnavailable: Backend indisponível
        """

    @abstractmethod
    async def verify_identity(self, identity_key: str, credential: str) -> bool:
        """Verifica credencial (PIN) da identidade.

        Returns:
            True se a credencial confere.
        """

    @abstractmethod
    async def lookup_claim(self, claim_id: str) -> ClaimRecord | None:
        """Busca reclamação por ID; None se não existir."""

    @abstractmethod
    async def register_customer(
        self,
        identity_key: str,
        full_name: str,
        email: str | None,
        pin: str,
    ) -> str:
        """Cadastra cliente e retorna o customer_id gerado.

        Raises:
            ExternalUnavailable: Backend indisponível
            ValueError: Cadastro rejeitado (ex.: identidade já cadastrada)
        """
