"""Sub-fluxo informativo: tópicos por SMS e consulta de reclamação."""

from __future__ import annotations

from ussd_engine.application.flows.dependencies import FlowDependencies
from ussd_engine.engine.actions import assign, from_payload
from ussd_engine.engine.context import MachineContext
from ussd_engine.engine.definition import (
    MachineBuilder,
    MachineDefinition,
    on_input,
    with_navigation,
)
from ussd_engine.engine.guard_library.domain import claim_exists
from ussd_engine.engine.guard_library.navigation import choice, is_input
from ussd_engine.engine.guard_library.validation import valid_claim_id

ROUTE_TO_MAIN = "ROUTE_TO_MAIN"
BACK = "BACK"
EXIT = "EXIT"

TOPICS: dict[str, str] = {
    "1": "about",
    "2": "products",
    "3": "fees",
}


def _topic(context, event) -> str:
    return TOPICS.get((event.input or "").strip(), "about")


def _sms_params(context: MachineContext) -> dict[str, object]:
    return {"topic": context.get("topic")}


def _claim_params(context: MachineContext) -> dict[str, object]:
    return {"claim_id": context.get("claim_id"), "status": context.get("claim_status")}


def build_know_more_flow(deps: FlowDependencies) -> MachineDefinition:
    machine = MachineBuilder("know_more", initial="info_menu")
    machine.state(
        "info_menu",
        *with_navigation(
            on_input("sms_sent", choice(*TOPICS), action=assign(topic=_topic)),
            on_input("claim_entry", is_input("4")),
            back="back",
            exit="exit",
        ),
        message="know_more.menu",
    )
    machine.state(
        "sms_sent",
        *with_navigation(
            on_input("route_to_main", is_input("1")),
            back="info_menu",
            exit="exit",
        ),
        message="know_more.sms_sent",
        params=_sms_params,
    )
    machine.state(
        "claim_entry",
        *with_navigation(
            on_input(
                "claim_status",
                valid_claim_id(),
                claim_exists(deps.external_query),
                action=assign(
                    claim_id=from_payload("claim_id"),
                    claim_status=from_payload("claim_status"),
                ),
            ),
            back="info_menu",
            exit="exit",
        ),
        message="know_more.claim_entry",
    )
    machine.state(
        "claim_status",
        *with_navigation(
            on_input("route_to_main", is_input("1")),
            back="info_menu",
            exit="exit",
        ),
        message="know_more.claim_status",
        params=_claim_params,
    )
    machine.final("route_to_main", output=ROUTE_TO_MAIN)
    machine.final("back", output=BACK)
    machine.final("exit", output=EXIT)
    return machine.build()
