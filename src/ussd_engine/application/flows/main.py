"""Máquina raiz do serviço USSD.

Menu inicial:
    1. Saber mais (informações e consulta de reclamação)
    2. Conta (login / cadastro)
    3. Transferir (exige login)

Os guards de sistema (disponibilidade e manutenção) são globais da raiz e
valem para qualquer estado, inclusive dentro de sub-fluxos.
"""

from __future__ import annotations

from ussd_engine.application.flows import account_creation, account_menu, know_more, login, transfer
from ussd_engine.application.flows.dependencies import FlowDependencies
from ussd_engine.engine.actions import assign, from_output_data
from ussd_engine.engine.context import MachineContext
from ussd_engine.engine.definition import (
    MachineBuilder,
    MachineDefinition,
    on,
    on_input,
    with_navigation,
)
from ussd_engine.engine.guard_library.domain import context_flag
from ussd_engine.engine.guard_library.navigation import is_input
from ussd_engine.engine.guard_library.system import system_guards

# Eventos da raiz gerados pelas saídas dos sub-fluxos
ROUTE_TO_MAIN = "ROUTE_TO_MAIN"
GO_BACK = "GO_BACK"
EXIT = "EXIT"
LOGIN_SELECTED = "LOGIN_SELECTED"
CREATE_SELECTED = "CREATE_SELECTED"
LOGIN_SUCCESS = "LOGIN_SUCCESS"
ACCOUNT_CREATED = "ACCOUNT_CREATED"
TRANSFER_RESERVED = "TRANSFER_RESERVED"
UNHANDLED_OUTPUT = "UNHANDLED_OUTPUT"


def _menu_params(context: MachineContext) -> dict[str, object]:
    return {"authenticated": bool(context.get("authenticated"))}


def _transfer_params(context: MachineContext) -> dict[str, object]:
    return {"amount": context.get("amount"), "recipient": context.get("recipient")}


def _account_params(context: MachineContext) -> dict[str, object]:
    return {"customer_id": context.get("customer_id")}


def build_main_flow(deps: FlowDependencies) -> MachineDefinition:
    """Monta a árvore completa de fluxos.

    Raises:
        ConfigurationError: Se alguma definição da árvore for inválida
    """
    machine = MachineBuilder("main", initial="pre_menu", global_guards=system_guards(deps.limits))

    machine.state(
        "pre_menu",
        *with_navigation(
            on_input("know_more", is_input("1")),
            on_input("account_menu", is_input("2")),
            on_input("transfer", is_input("3"), context_flag("authenticated")),
            exit="close_session",
        ),
        message="main.menu",
        params=_menu_params,
    )

    machine.subflow(
        "know_more",
        know_more.build_know_more_flow(deps),
        on(ROUTE_TO_MAIN, "pre_menu"),
        on(GO_BACK, "pre_menu"),
        on(EXIT, "close_session"),
        on(UNHANDLED_OUTPUT, "pre_menu"),
        outputs={
            know_more.ROUTE_TO_MAIN: ROUTE_TO_MAIN,
            know_more.BACK: GO_BACK,
            know_more.EXIT: EXIT,
        },
        default_event=UNHANDLED_OUTPUT,
    )

    machine.subflow(
        "account_menu",
        account_menu.build_account_menu_flow(),
        on(LOGIN_SELECTED, "login"),
        on(CREATE_SELECTED, "account_creation"),
        on(GO_BACK, "pre_menu"),
        on(EXIT, "close_session"),
        on(UNHANDLED_OUTPUT, "pre_menu"),
        outputs={
            account_menu.LOGIN_SELECTED: LOGIN_SELECTED,
            account_menu.CREATE_SELECTED: CREATE_SELECTED,
            account_menu.BACK: GO_BACK,
            account_menu.EXIT: EXIT,
        },
        default_event=UNHANDLED_OUTPUT,
    )

    machine.subflow(
        "login",
        login.build_login_flow(deps),
        on(LOGIN_SUCCESS, "pre_menu", action=assign(authenticated=True)),
        on(GO_BACK, "account_menu"),
        on(EXIT, "close_session"),
        on(UNHANDLED_OUTPUT, "account_menu"),
        outputs={
            login.LOGIN_SUCCESS: LOGIN_SUCCESS,
            login.BACK: GO_BACK,
            login.EXIT: EXIT,
        },
        default_event=UNHANDLED_OUTPUT,
    )

    machine.subflow(
        "account_creation",
        account_creation.build_account_creation_flow(deps),
        on(
            ACCOUNT_CREATED,
            "account_created",
            action=assign(customer_id=from_output_data("customer_id")),
        ),
        on(GO_BACK, "account_menu"),
        on(EXIT, "close_session"),
        on(UNHANDLED_OUTPUT, "account_menu"),
        outputs={
            account_creation.ACCOUNT_CREATED: ACCOUNT_CREATED,
            account_creation.CANCELLED: GO_BACK,
            account_creation.EXIT: EXIT,
        },
        default_event=UNHANDLED_OUTPUT,
    )

    machine.state(
        "account_created",
        *with_navigation(
            on_input("pre_menu", is_input("1")),
            exit="close_session",
        ),
        message="main.account_created",
        params=_account_params,
    )

    machine.subflow(
        "transfer",
        transfer.build_transfer_flow(deps),
        on(
            TRANSFER_RESERVED,
            "transfer_complete",
            action=assign(
                amount=from_output_data("amount"),
                recipient=from_output_data("recipient"),
                reservation_id=from_output_data("reservation_id"),
            ),
        ),
        on(GO_BACK, "pre_menu"),
        on(EXIT, "close_session"),
        on(UNHANDLED_OUTPUT, "pre_menu"),
        outputs={
            transfer.TRANSFER_RESERVED: TRANSFER_RESERVED,
            transfer.CANCELLED: GO_BACK,
            transfer.EXIT: EXIT,
        },
        default_event=UNHANDLED_OUTPUT,
    )

    machine.final("transfer_complete", message="main.transfer_complete", params=_transfer_params)
    machine.final("close_session", message="main.goodbye")
    return machine.build()
