"""Ações puras de transição: (contexto, evento) -> novo contexto."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ussd_engine.engine.context import MachineContext, MachineEvent

Action = Callable[[MachineContext, MachineEvent], MachineContext]


def assign(**values: Any) -> Action:
    """Grava valores em ``context.data``.

    Cada valor pode ser constante ou callable ``(context, event) -> valor``.

    Exemplo:
        assign(full_name=from_input, email=None)
    """

    def _action(context: MachineContext, event: MachineEvent) -> MachineContext:
        resolved = {
            key: value(context, event) if callable(value) else value
            for key, value in values.items()
        }
        return context.evolve(**resolved)

    return _action


def discard(*keys: str) -> Action:
    """Remove chaves de ``context.data`` (ex.: PIN após uso)."""

    def _action(context: MachineContext, event: MachineEvent) -> MachineContext:
        return context.without(*keys)

    return _action


def chain(*actions: Action) -> Action:
    """Compõe ações na ordem informada."""

    def _action(context: MachineContext, event: MachineEvent) -> MachineContext:
        for action in actions:
            context = action(context, event)
        return context

    return _action


def from_input(context: MachineContext, event: MachineEvent) -> str | None:
    return event.input


def from_payload(key: str, default: Any = None) -> Callable[[MachineContext, MachineEvent], Any]:
    """Lê ``key`` do payload do evento (inclui details dos guards)."""

    def _read(context: MachineContext, event: MachineEvent) -> Any:
        return event.payload.get(key, default)

    return _read


def from_output_data(
    key: str, default: Any = None
) -> Callable[[MachineContext, MachineEvent], Any]:
    """Lê ``key`` dos dados finais de um sub-fluxo (payload["data"])."""

    def _read(context: MachineContext, event: MachineEvent) -> Any:
        return event.payload.get("data", {}).get(key, default)

    return _read
