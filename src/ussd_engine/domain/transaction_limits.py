"""Limites diários de transação por identidade.

Acumulador (total, quantidade) por identidade e dia civil no fuso
configurado. ``check_and_reserve`` verifica e reserva de forma atômica;
se a transferência falhar depois, o chamador compensa com ``release``.

Ordem das verificações:
1. quantidade diária atingida  -> "daily transaction count exceeded"
2. total + valor > limite       -> "daily limit exceeded"
3. saldo - valor < saldo mínimo -> "insufficient balance"
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from ussd_engine.domain.enums import DenyReason
from ussd_engine.observability.logging import get_logger, mask_identity
from ussd_engine.utils.ids import new_reservation_id

if TYPE_CHECKING:
    from ussd_engine.config.limits import GuardLimits

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class TransactionAccumulator:
    """Totais do dia corrente de uma identidade."""

    identity_key: str
    day: date
    total: Decimal = Decimal("0")
    count: int = 0


@dataclass(slots=True, frozen=True)
class ReservationResult:
    """Resultado de ``check_and_reserve``."""

    allowed: bool
    reason: DenyReason | None = None
    reservation_id: str | None = None
    total: Decimal = Decimal("0")
    count: int = 0


@dataclass(slots=True, frozen=True)
class _Reservation:
    identity_key: str
    day: date
    amount: Decimal


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TransactionLimitEnforcer:
    """Aplica limite diário de valor, de quantidade e saldo mínimo."""

    def __init__(
        self,
        daily_limit: Decimal = Decimal("50000"),
        max_daily_count: int = 10,
        minimum_balance: Decimal = Decimal("10"),
        timezone: str = "UTC",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._daily_limit = Decimal(daily_limit)
        self._max_daily_count = max_daily_count
        self._minimum_balance = Decimal(minimum_balance)
        self._tz = ZoneInfo(timezone)
        self._clock = clock or _utc_now
        self._accumulators: dict[str, TransactionAccumulator] = {}
        self._reservations: dict[str, _Reservation] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_limits(
        cls,
        limits: GuardLimits,
        clock: Callable[[], datetime] | None = None,
    ) -> TransactionLimitEnforcer:
        return cls(
            daily_limit=limits.transaction_daily_limit,
            max_daily_count=limits.transaction_max_daily_count,
            minimum_balance=limits.transaction_minimum_balance,
            timezone=limits.timezone,
            clock=clock,
        )

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


    def _local_day(self, now: datetime | None) -> date:
        moment = now if now is not None else self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(self._tz).date()

    def _current(self, identity_key: str, day: date) -> TransactionAccumulator:
        acc = self._accumulators.get(identity_key)
        if acc is None or acc.day != day:
            acc = TransactionAccumulator(identity_key=identity_key, day=day)
            self._accumulators[identity_key] = acc
        return acc

    def check_and_reserve(
        self,
        identity_key: str,
        amount: Decimal,
        now: datetime | None = None,
        balance: Decimal | None = None,
    ) -> ReservationResult:
        """Verifica limites e, se permitido, reserva o valor no acumulador.

        Args:
            identity_key: Identidade (MSISDN)
            amount: Valor da transação (positivo)
            now: Instante da transação (padrão: clock em UTC)
            balance: Saldo informado pela porta externa; None pula a
                verificação de saldo mínimo

        Returns:
            ReservationResult com reservation_id quando permitido
        """
        amount = Decimal(amount)
        day = self._local_day(now)

        with self._lock_for(identity_key):
            acc = self._current(identity_key, day)

            reason: DenyReason | None = None
            if amount <= 0:
                reason = DenyReason.INVALID_AMOUNT
            elif acc.count >= self._max_daily_count:
                reason = DenyReason.DAILY_COUNT_EXCEEDED
            elif acc.total + amount > self._daily_limit:
                reason = DenyReason.DAILY_LIMIT_EXCEEDED
            elif balance is not None and balance - amount < self._minimum_balance:
                reason = DenyReason.INSUFFICIENT_BALANCE

            if reason is not None:
                logger.info(
                    "Transaction denied by limits",
                    extra={
                        "identity": mask_identity(identity_key),
                        "reason": str(reason),
                        "daily_total": str(acc.total),
                        "daily_count": acc.count,
                    },
                )
                return ReservationResult(
                    allowed=False, reason=reason, total=acc.total, count=acc.count
                )

            acc.total += amount
            acc.count += 1
            reservation_id = new_reservation_id()
            self._reservations[reservation_id] = _Reservation(identity_key, day, amount)

            logger.debug(
                "Transaction amount reserved",
                extra={
                    "identity": mask_identity(identity_key),
                    "daily_total": str(acc.total),
                    "daily_count": acc.count,
                },
            )
            return ReservationResult(
                allowed=True,
                reservation_id=reservation_id,
                total=acc.total,
                count=acc.count,
            )

    def release(self, reservation_id: str) -> bool:
        """Compensa uma reserva cuja transferência falhou.

        Retorna False se a reserva não existe (já liberada) ou pertence a
        um dia que já virou.
        """
        with self._registry_lock:
            reservation = self._reservations.pop(reservation_id, None)
        if reservation is None:
            return False

        with self._lock_for(reservation.identity_key):
            acc = self._accumulators.get(reservation.identity_key)
            if acc is None or acc.day != reservation.day:
                return False
            acc.total = max(acc.total - reservation.amount, Decimal("0"))
            acc.count = max(acc.count - 1, 0)

        logger.info(
            "Transaction reservation released",
            extra={"identity": mask_identity(reservation.identity_key)},
        )
        return True

    def snapshot(self, identity_key: str, now: datetime | None = None) -> TransactionAccumulator:
        """Cópia dos totais do dia (consulta sem reserva)."""
        day = self._local_day(now)
        acc = self._accumulators.get(identity_key)
        if acc is None or acc.day != day:
            return TransactionAccumulator(identity_key=identity_key, day=day)
        return TransactionAccumulator(acc.identity_key, acc.day, acc.total, acc.count)

    def sweep(self, now: datetime | None = None) -> int:
        """Descarta acumuladores e reservas de dias anteriores."""
        day = self._local_day(now)
        removed = 0
        with self._registry_lock:
            candidates = [key for key, acc in list(self._accumulators.items()) if acc.day != day]
            for rid in [r for r, res in self._reservations.items() if res.day != day]:
                del self._reservations[rid]
        for key in candidates:
            with self._lock_for(key):
                acc = self._accumulators.get(key)
                if acc is None or acc.day == day:
                    continue
                with self._registry_lock:
                    del self._accumulators[key]
                    self._key_locks.pop(key, None)
                removed += 1
        return removed
