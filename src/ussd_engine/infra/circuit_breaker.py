"""Circuit breaker para colaboradores externos.

Estados:
- closed: chamadas passam; falhas consecutivas são contadas
- open: chamadas falham imediatamente até ``reset_timeout_seconds``
- half_open: libera poucas chamadas de teste; sucesso fecha, falha reabre
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from ussd_engine.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class BreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuração do circuit breaker."""

    fail_max: int = 5
    reset_timeout_seconds: float = 30.0
    half_open_max_calls: int = 1


class CircuitBreaker:
    """Breaker assíncrono compartilhado pelas chamadas de um adaptador."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._name = name
        self._config = config or CircuitBreakerConfig()
        self._clock = clock or time.monotonic
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at: float | None = None
        self._trial_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    async def allow_request(self) -> bool:
        """True se a chamada pode seguir; False = falha rápida."""
        async with self._lock:
            if self._state is BreakerState.OPEN:
                assert self._opened_at is not None
                if self._clock() - self._opened_at < self._config.reset_timeout_seconds:
                    return False
                self._move_to(BreakerState.HALF_OPEN)
                self._trial_calls = 0

            if self._state is BreakerState.HALF_OPEN:
                if self._trial_calls >= self._config.half_open_max_calls:
                    return False
                self._trial_calls += 1
            return True

    async def record_success(self) -> None:
        async with self._lock:
            self._failures = 0
            if self._state is not BreakerState.CLOSED:
                self._move_to(BreakerState.CLOSED)
                self._opened_at = None

    async def record_failure(self) -> None:
        """Registra falha de infraestrutura (timeout, conexão, 5xx).

        Respostas de negócio (4xx) não devem chegar aqui.
        """
        async with self._lock:
            self._failures += 1
            if (
                self._state is BreakerState.HALF_OPEN
                or self._failures >= self._config.fail_max
            ):
                self._opened_at = self._clock()
                self._move_to(BreakerState.OPEN)

    def _move_to(self, state: BreakerState) -> None:
        if state is self._state:
            return
        log = logger.error if state is BreakerState.OPEN else logger.info
        log(
            "Circuit breaker state changed",
            extra={
                "breaker": self._name,
                "from_state": str(self._state),
                "to_state": str(state),
                "failures": self._failures,
            },
        )
        self._state = state
