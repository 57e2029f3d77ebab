"""Guards de navegação: seleção de menu, voltar e sair.

Convenções de input (já normalizado pelo parser):
- "0" volta para a tela anterior
- "*" encerra o fluxo
"""

from __future__ import annotations

from ussd_engine.domain.enums import DenyReason, GuardFamily
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.guards import Guard, guard

BACK_INPUT = "0"
EXIT_INPUT = "*"


def _input(event: MachineEvent) -> str:
    return (event.input or "").strip()


def is_input(value: str) -> Guard:
    """Aceita exatamente ``value``."""

    def _check(context: MachineContext, event: MachineEvent) -> bool:
        return _input(event) == value

    return guard(
        f"is_input({value})",
        GuardFamily.NAVIGATION,
        _check,
        reason=DenyReason.INVALID_SELECTION,
    )


def choice(*values: str) -> Guard:
    """Aceita qualquer um dos valores informados."""
    options = frozenset(values)

    def _check(context: MachineContext, event: MachineEvent) -> bool:
        return _input(event) in options

    return guard(
        "choice(" + ",".join(values) + ")",
        GuardFamily.NAVIGATION,
        _check,
        reason=DenyReason.INVALID_SELECTION,
    )


def _is_back(context: MachineContext, event: MachineEvent) -> bool:
    return _input(event) == BACK_INPUT


def _is_exit(context: MachineContext, event: MachineEvent) -> bool:
    return _input(event) == EXIT_INPUT


is_back = guard("is_back", GuardFamily.NAVIGATION, _is_back, reason=DenyReason.INVALID_SELECTION)
is_exit = guard("is_exit", GuardFamily.NAVIGATION, _is_exit, reason=DenyReason.INVALID_SELECTION)