"""Sub-fluxo de menu de conta: escolhe entre login e cadastro."""

from __future__ import annotations

from ussd_engine.engine.definition import (
    MachineBuilder,
    MachineDefinition,
    on_input,
    with_navigation,
)
from ussd_engine.engine.guard_library.navigation import is_input

LOGIN_SELECTED = "LOGIN_SELECTED"
CREATE_SELECTED = "CREATE_SELECTED"
BACK = "BACK"
EXIT = "EXIT"


def build_account_menu_flow() -> MachineDefinition:
    machine = MachineBuilder("account_menu", initial="menu")
    machine.state(
        "menu",
        *with_navigation(
            on_input("login_selected", is_input("1")),
            on_input("create_selected", is_input("2")),
            back="back",
            exit="exit",
        ),
        message="account_menu.menu",
    )
    machine.final("login_selected", output=LOGIN_SELECTED)
    machine.final("create_selected", output=CREATE_SELECTED)
    machine.final("back", output=BACK)
    machine.final("exit", output=EXIT)
    return machine.build()
