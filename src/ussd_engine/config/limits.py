"""Snapshot imutável de limites de negócio consumido pelos guards.

O snapshot nunca é mutado: mudanças em runtime (ex.: ligar modo de
manutenção) substituem o snapshot inteiro no ``GuardLimitsProvider``.
Runtimes em andamento enxergam o novo valor na próxima avaliação.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict


class GuardLimits(BaseModel):
    """Limites de PIN, transação, rate limit, sessão e disponibilidade."""

    model_config = ConfigDict(frozen=True)

    pin_max_attempts: int = 3
    pin_lockout_seconds: int = 1800
    transaction_daily_limit: Decimal = Decimal("50000")
    transaction_max_daily_count: int = 10
    transaction_minimum_balance: Decimal = Decimal("10")
    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 60
    session_timeout_seconds: int = 1800
    service_available: bool = True
    maintenance_mode: bool = False
    timezone: str = "Africa/Nairobi"

    @classmethod
    def for_environment(cls, environment: str) -> GuardLimits:
        """Presets por ambiente (dev é mais permissivo, prod mais restrito)."""
        env = environment.lower()
        if env in ("development", "dev", "local"):
            return cls(
                pin_max_attempts=5,
                transaction_daily_limit=Decimal("100000"),
                transaction_max_daily_count=20,
                transaction_minimum_balance=Decimal("1"),
                rate_limit_requests=20,
                session_timeout_seconds=3600,
            )
        if env in ("production", "prod"):
            return cls(
                rate_limit_requests=5,
                session_timeout_seconds=900,
            )
        return cls()

    def replace(self, **changes: Any) -> GuardLimits:
        """Retorna novo snapshot com os campos alterados."""
        return self.model_copy(update=changes)


class GuardLimitsProvider:
    """Guarda o snapshot corrente de limites com troca atômica."""

    def __init__(self, limits: GuardLimits | None = None) -> None:
        self._limits = limits or GuardLimits()
        self._lock = threading.Lock()

    @property
    def current(self) -> GuardLimits:
        return self._limits

    def swap(self, limits: GuardLimits) -> GuardLimits:
        """Substitui o snapshot e retorna o anterior."""
        with self._lock:
            previous, self._limits = self._limits, limits
        return previous

    def update(self, **changes: Any) -> GuardLimits:
        """Atalho para ``swap(current.replace(...))``; retorna o novo snapshot."""
        with self._lock:
            self._limits = self._limits.replace(**changes)
            return self._limits
