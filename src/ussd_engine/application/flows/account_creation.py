"""Sub-fluxo de cadastro: nome -> e-mail (opcional) -> PIN -> confirmação.

O cadastro efetivo acontece no guard ``registration_accepted`` ao
confirmar o PIN; o PIN é descartado do contexto logo em seguida.
"""

from __future__ import annotations

from ussd_engine.application.flows.dependencies import FlowDependencies
from ussd_engine.engine.actions import assign, chain, discard, from_payload
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.definition import (
    MachineBuilder,
    MachineDefinition,
    on_input,
    with_navigation,
)
from ussd_engine.engine.guard_library.domain import registration_accepted
from ussd_engine.engine.guard_library.navigation import is_input
from ussd_engine.engine.guard_library.validation import (
    EMAIL_SKIP_INPUT,
    matches_context,
    pin_format,
    sanitize_input,
    valid_email,
    valid_text,
)

ACCOUNT_CREATED = "ACCOUNT_CREATED"
CANCELLED = "CANCELLED"
EXIT = "EXIT"


def _clean_input(context: MachineContext, event: MachineEvent) -> str:
    return sanitize_input(event.input)


def _email(context: MachineContext, event: MachineEvent) -> str:
    return sanitize_input(event.input).lower()


def build_account_creation_flow(deps: FlowDependencies) -> MachineDefinition:
    machine = MachineBuilder("account_creation", initial="name_entry")
    machine.state(
        "name_entry",
        *with_navigation(
            on_input("email_entry", valid_text(), action=assign(full_name=_clean_input)),
            back="cancelled",
            exit="exit",
        ),
        message="register.enter_name",
    )
    machine.state(
        "email_entry",
        *with_navigation(
            on_input("pin_entry", is_input(EMAIL_SKIP_INPUT), action=assign(email=None)),
            on_input("pin_entry", valid_email(), action=assign(email=_email)),
            back="name_entry",
            exit="exit",
        ),
        message="register.enter_email",
    )
    machine.state(
        "pin_entry",
        *with_navigation(
            on_input(
                "confirm_pin",
                pin_format(deps.pin_length, reject_weak=True),
                action=assign(pin=_clean_input),
            ),
            back="email_entry",
            exit="exit",
        ),
        message="register.enter_pin",
    )
    machine.state(
        "confirm_pin",
        *with_navigation(
            on_input(
                "created",
                pin_format(deps.pin_length),
                matches_context("pin"),
                registration_accepted(deps.external_query),
                action=chain(
                    assign(customer_id=from_payload("customer_id")),
                    discard("pin"),
                ),
            ),
            back="pin_entry",
            exit="exit",
        ),
        message="register.confirm_pin",
    )
    machine.final("created", output=ACCOUNT_CREATED)
    machine.final("cancelled", output=CANCELLED)
    machine.final("exit", output=EXIT, on_entry=[discard("pin")])
    return machine.build()
