"""Rastreamento de falhas consecutivas de PIN e bloqueio por identidade.

Regras:
- Cada falha incrementa ``attempts``; ao atingir ``max_attempts`` a
  identidade fica bloqueada (a chamada que atinge o limite já retorna
  ``locked=True`` com ``attempts_remaining=0``).
- Sucesso, desbloqueio explícito ou expiração do bloqueio zeram o registro.
- ``lockout_seconds=0`` mantém o bloqueio até desbloqueio explícito.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ussd_engine.observability.logging import get_logger, mask_identity

if TYPE_CHECKING:
    from ussd_engine.config.limits import GuardLimits

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class LockoutRecord:
    """Estado de falhas de uma identidade."""

    identity_key: str
    attempts: int = 0
    locked_until: float | None = None
    last_failure_at: float | None = None


@dataclass(slots=True, frozen=True)
class LockoutStatus:
    """Resultado de ``record_failure``."""

    locked: bool
    attempts_remaining: int


class PinLockoutTracker:
    """Contador de falhas de PIN com bloqueio temporário."""

    def __init__(
        self,
        max_attempts: int = 3,
        lockout_seconds: int = 1800,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)
        self._max_attempts = max_attempts
        self._lockout_seconds = lockout_seconds
        self._clock = clock or time.monotonic
        self._records: dict[str, LockoutRecord] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_limits(
        cls,
        limits: GuardLimits,
        clock: Callable[[], float] | None = None,
    ) -> PinLockoutTracker:
        return cls(
            max_attempts=limits.pin_max_attempts,
            lockout_seconds=limits.pin_lockout_seconds,
            clock=clock,
        )

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @contextmanager
    def _lock_for(self, identity_key: str) -> Iterator[None]:
        """Segura o lock da identidade; refaz se o sweep o descartou na espera."""
        while True:
            with self._registry_lock:
                lock = self._key_locks.get(identity_key)
                if lock is None:
                    lock = threading.Lock()
                    self._key_locks[identity_key] = lock
            with lock:
                if self._key_locks.get(identity_key) is lock:
                    yield
                    return


    def _expire_if_needed(self, record: LockoutRecord, now: float) -> None:
        if record.locked_until is not None and now >= record.locked_until:
            logger.info(
                "PIN lockout expired",
                extra={"identity": mask_identity(record.identity_key)},
            )
            record.attempts = 0
            record.locked_until = None

    def record_failure(self, identity_key: str, now: float | None = None) -> LockoutStatus:
        """Registra falha de PIN e retorna status de bloqueio."""
        current = self._clock() if now is None else now

        with self._lock_for(identity_key):
            record = self._records.get(identity_key)
            if record is None:
                record = LockoutRecord(identity_key=identity_key)
                self._records[identity_key] = record

            self._expire_if_needed(record, current)

            if record.locked_until is not None:
                return LockoutStatus(locked=True, attempts_remaining=0)

            record.attempts += 1
            record.last_failure_at = current

            if record.attempts >= self._max_attempts:
                record.locked_until = (
                    current + self._lockout_seconds if self._lockout_seconds > 0 else math.inf
                )
                logger.warning(
                    "PIN lockout engaged",
                    extra={
                        "identity": mask_identity(identity_key),
                        "attempts": record.attempts,
                        "lockout_seconds": self._lockout_seconds,
                    },
                )
                return LockoutStatus(locked=True, attempts_remaining=0)

            return LockoutStatus(
                locked=False,
                attempts_remaining=self._max_attempts - record.attempts,
            )

    def record_success(self, identity_key: str) -> None:
        """Zera falhas após PIN correto."""
        with self._lock_for(identity_key):
            self._records.pop(identity_key, None)

    def unlock(self, identity_key: str) -> bool:
        """Desbloqueio explícito (ex.: atendimento). Retorna True se havia registro."""
        with self._lock_for(identity_key):
            removed = self._records.pop(identity_key, None) is not None
        if removed:
            logger.info("PIN lockout cleared", extra={"identity": mask_identity(identity_key)})
        return removed

    def is_locked(self, identity_key: str, now: float | None = None) -> bool:
        """Consulta sem efeito colateral além de expirar bloqueio vencido."""
        current = self._clock() if now is None else now

        with self._lock_for(identity_key):
            record = self._records.get(identity_key)
            if record is None:
                return False
            self._expire_if_needed(record, current)
            return record.locked_until is not None

    def attempts_remaining(self, identity_key: str) -> int:
        record = self._records.get(identity_key)
        if record is None:
            return self._max_attempts
        return max(self._max_attempts - record.attempts, 0)

    def _sweepable(self, record: LockoutRecord, now: float) -> bool:
        if record.locked_until is not None:
            return now >= record.locked_until
        return (
            self._lockout_seconds > 0
            and record.last_failure_at is not None
            and now - record.last_failure_at >= self._lockout_seconds
        )

    def sweep(self, now: float | None = None) -> int:
        """Remove bloqueios vencidos e falhas antigas sem bloqueio."""
        current = self._clock() if now is None else now
        removed = 0

        with self._registry_lock:
            candidates = [
                key
                for key, record in list(self._records.items())
                if self._sweepable(record, current)
            ]
        for key in candidates:
            with self._lock_for(key):
                record = self._records.get(key)
                if record is None or not self._sweepable(record, current):
                    continue
                with self._registry_lock:
                    del self._records[key]
                    self._key_locks.pop(key, None)
                removed += 1

        return removed
