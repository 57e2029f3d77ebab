"""Guards de domínio: PIN, limites de transação, reclamações e cadastro.

Guards com I/O consultam a ``ExternalQueryPort`` e são os únicos pontos de
suspensão do dispatch. ``ExternalUnavailable`` levantada pela porta vira
negação "external unavailable" no ``GuardEngine``; negações de negócio
têm motivo próprio.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from ussd_engine.domain.enums import DenyReason, ErrorKind, GuardFamily
from ussd_engine.domain.pin_lockout import PinLockoutTracker
from ussd_engine.domain.protocols.external_query import ExternalQueryPort
from ussd_engine.domain.transaction_limits import TransactionLimitEnforcer
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.guard_library.validation import sanitize_input
from ussd_engine.engine.guards import Guard, GuardDecision, guard
from ussd_engine.observability.logging import get_logger, mask_session

logger: logging.Logger = get_logger(__name__)


def _session_gone(context: MachineContext, guard_name: str) -> GuardDecision:
    logger.info(
        "Session evicted during external query",
        extra={"session_id": mask_session(context.session_id), "guard": guard_name},
    )
    return GuardDecision.deny(
        DenyReason.SESSION_EXPIRED, GuardFamily.DOMAIN, error_kind=ErrorKind.SESSION_EXPIRED
    )


def pin_not_locked(tracker: PinLockoutTracker) -> Guard:
    """Nega com "locked" enquanto a identidade estiver bloqueada."""

    def _check(context: MachineContext, event: MachineEvent) -> bool:
        return not tracker.is_locked(context.identity_key)

    return guard(
        "pin_not_locked",
        GuardFamily.DOMAIN,
        _check,
        reason=DenyReason.LOCKED,
        error_kind=ErrorKind.LOCKED,
    )


def pin_verified(port: ExternalQueryPort, tracker: PinLockoutTracker) -> Guard:
    """Verifica o PIN na porta externa e alimenta o contador de falhas.

    Em falha, ``details`` traz ``attempts_remaining`` e ``locked``. Sessão
    removida durante a consulta não altera o contador.
    """

    async def _check(context: MachineContext, event: MachineEvent) -> GuardDecision:
        pin = sanitize_input(event.input)
        verified = await port.verify_identity(context.identity_key, pin)
        if not event.session_alive():
            return _session_gone(context, "pin_verified")
        if verified:
            tracker.record_success(context.identity_key)
            return GuardDecision.allow()

        status = tracker.record_failure(context.identity_key)
        logger.info(
            "PIN verification failed",
            extra={
                "session_id": mask_session(context.session_id),
                "attempts_remaining": status.attempts_remaining,
                "locked": status.locked,
            },
        )
        return GuardDecision.deny(
            DenyReason.INVALID_PIN,
            GuardFamily.DOMAIN,
            attempts_remaining=status.attempts_remaining,
            locked=status.locked,
        )

    return guard("pin_verified", GuardFamily.DOMAIN, _check, performs_io=True)


def transaction_allowed(
    port: ExternalQueryPort,
    enforcer: TransactionLimitEnforcer,
    amount_key: str = "amount",
) -> Guard:
    """Consulta saldo e reserva o valor contra os limites diários.

    Em sucesso, ``details`` traz ``reservation_id``; se a transição não for
    efetivada (sessão removida, negação posterior na cadeia) a reserva é
    liberada pela compensação anexada à decisão.
    """

    async def _check(context: MachineContext, event: MachineEvent) -> GuardDecision:
        try:
            amount = Decimal(str(context.get(amount_key)))
        except InvalidOperation:
            return GuardDecision.deny(DenyReason.INVALID_AMOUNT, GuardFamily.DOMAIN)

        balance = await port.get_balance(context.identity_key)
        if not event.session_alive():
            return _session_gone(context, "transaction_allowed")
        result = enforcer.check_and_reserve(context.identity_key, amount, balance=balance)
        if not result.allowed:
            return GuardDecision.deny(
                result.reason or DenyReason.CONDITION_NOT_MET,
                GuardFamily.DOMAIN,
                daily_total=str(result.total),
                daily_count=result.count,
            )
        reservation_id = result.reservation_id
        return GuardDecision.allow(
            reservation_id=reservation_id,
            daily_total=str(result.total),
        ).with_compensation(lambda: enforcer.release(reservation_id))

    return guard("transaction_allowed", GuardFamily.DOMAIN, _check, performs_io=True)


def claim_exists(port: ExternalQueryPort) -> Guard:
    """Busca a reclamação informada no input; nega se não existir."""

    async def _check(context: MachineContext, event: MachineEvent) -> GuardDecision:
        claim = await port.lookup_claim(sanitize_input(event.input))
        if claim is None:
            return GuardDecision.deny(DenyReason.CLAIM_NOT_FOUND, GuardFamily.DOMAIN)
        return GuardDecision.allow(
            claim_id=claim.claim_id,
            claim_status=claim.status,
        )

    return guard("claim_exists", GuardFamily.DOMAIN, _check, performs_io=True)


def registration_accepted(port: ExternalQueryPort) -> Guard:
    """Cadastra o cliente com os dados coletados no contexto."""

    async def _check(context: MachineContext, event: MachineEvent) -> GuardDecision:
        try:
            customer_id = await port.register_customer(
                context.identity_key,
                context.get("full_name", ""),
                context.get("email"),
                context.get("pin", ""),
            )
        except ValueError as exc:
            logger.info(
                "Customer registration rejected",
                extra={"session_id": mask_session(context.session_id), "error": str(exc)},
            )
            return GuardDecision.deny(DenyReason.REGISTRATION_REJECTED, GuardFamily.DOMAIN)
        return GuardDecision.allow(customer_id=customer_id)

    return guard("registration_accepted", GuardFamily.DOMAIN, _check, performs_io=True)


def context_flag(key: str, reason: str = DenyReason.NOT_AUTHENTICATED) -> Guard:
    """Exige ``context.data[key]`` verdadeiro (ex.: sessão autenticada)."""

    def _check(context: MachineContext, event: MachineEvent) -> bool:
        return bool(context.get(key))

    return guard(f"context_flag({key})", GuardFamily.DOMAIN, _check, reason=reason)
