"""Sub-fluxo de login por PIN.

Cadeia do PIN (locais antes de I/O): formato -> bloqueio -> verificação.
Três PINs errados bloqueiam a identidade; a partir daí qualquer PIN,
mesmo correto, é negado com "locked" até o bloqueio expirar.
"""

from __future__ import annotations

from ussd_engine.application.flows.dependencies import FlowDependencies
from ussd_engine.engine.context import MachineContext
from ussd_engine.engine.definition import (
    MachineBuilder,
    MachineDefinition,
    on_input,
    with_navigation,
)
from ussd_engine.engine.guard_library.domain import pin_not_locked, pin_verified
from ussd_engine.engine.guard_library.validation import pin_format

LOGIN_SUCCESS = "LOGIN_SUCCESS"
BACK = "BACK"
EXIT = "EXIT"


def build_login_flow(deps: FlowDependencies) -> MachineDefinition:
    def _pin_params(context: MachineContext) -> dict[str, object]:
        return {
            "pin_length": deps.pin_length,
            "attempts_remaining": context.error_details.get("attempts_remaining"),
        }

    machine = MachineBuilder("login", initial="pin_entry")
    machine.state(
        "pin_entry",
        *with_navigation(
            on_input(
                "success",
                pin_format(deps.pin_length),
                pin_not_locked(deps.pin_tracker),
                pin_verified(deps.external_query, deps.pin_tracker),
            ),
            back="back",
            exit="exit",
        ),
        message="login.enter_pin",
        params=_pin_params,
    )
    machine.final("success", output=LOGIN_SUCCESS)
    machine.final("back", output=BACK)
    machine.final("exit", output=EXIT)
    return machine.build()
