"""Sub-fluxo de transferência: valor -> destinatário -> confirmação.

Na confirmação o guard ``transaction_allowed`` consulta o saldo e reserva
o valor contra os limites diários. A execução da transferência em si é
do sistema externo: o ``reservation_id`` volta na resposta final e, se a
transferência falhar, o chamador libera a reserva com
``DELETE /reservations/{reservation_id}``.
"""

from __future__ import annotations

from decimal import Decimal

from ussd_engine.application.flows.dependencies import FlowDependencies
from ussd_engine.engine.actions import assign, from_payload
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.definition import (
    MachineBuilder,
    MachineDefinition,
    on_input,
    with_navigation,
)
from ussd_engine.engine.guard_library.domain import transaction_allowed
from ussd_engine.engine.guard_library.navigation import is_input
from ussd_engine.engine.guard_library.validation import (
    normalize_phone,
    sanitize_input,
    valid_amount,
    valid_phone,
)

TRANSFER_RESERVED = "TRANSFER_RESERVED"
CANCELLED = "CANCELLED"
EXIT = "EXIT"


def _amount(context: MachineContext, event: MachineEvent) -> str:
    return str(Decimal(sanitize_input(event.input)))


def _recipient(context: MachineContext, event: MachineEvent) -> str:
    return normalize_phone(sanitize_input(event.input))


def _confirm_params(context: MachineContext) -> dict[str, object]:
    return {"amount": context.get("amount"), "recipient": context.get("recipient")}


def build_transfer_flow(deps: FlowDependencies) -> MachineDefinition:
    machine = MachineBuilder("transfer", initial="amount_entry")
    machine.state(
        "amount_entry",
        *with_navigation(
            on_input("recipient_entry", valid_amount(), action=assign(amount=_amount)),
            back="cancelled",
            exit="exit",
        ),
        message="transfer.enter_amount",
    )
    machine.state(
        "recipient_entry",
        *with_navigation(
            on_input("confirm", valid_phone(), action=assign(recipient=_recipient)),
            back="amount_entry",
            exit="exit",
        ),
        message="transfer.enter_recipient",
    )
    machine.state(
        "confirm",
        *with_navigation(
            on_input(
                "reserved",
                is_input("1"),
                transaction_allowed(deps.external_query, deps.transaction_limits),
                action=assign(reservation_id=from_payload("reservation_id")),
            ),
            on_input("cancelled", is_input("2")),
            back="recipient_entry",
            exit="exit",
        ),
        message="transfer.confirm",
        params=_confirm_params,
    )
    machine.final("reserved", output=TRANSFER_RESERVED)
    machine.final("cancelled", output=CANCELLED)
    machine.final("exit", output=EXIT)
    return machine.build()
