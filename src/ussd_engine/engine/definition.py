"""Definição declarativa de máquinas de estado hierárquicas.

Uma ``MachineDefinition`` é imutável depois de construída e compartilhada
(somente leitura) por todos os runtimes. A construção valida:
- estado inicial e alvos de transição existentes
- estados finais sem transições
- sub-fluxos com transição para todo evento mapeado (inclusive o default)
- guards locais antes de guards com I/O em cada transição
- todo estado alcançável a partir do inicial consegue chegar a um final

Qualquer violação levanta ``ConfigurationError``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from ussd_engine.domain.enums import EventType
from ussd_engine.domain.errors import ConfigurationError
from ussd_engine.engine.actions import Action
from ussd_engine.engine.context import MachineContext
from ussd_engine.engine.guard_library.navigation import is_back, is_exit
from ussd_engine.engine.guards import Guard

MessageParams = Callable[[MachineContext], Mapping[str, Any]]


class StateKind(StrEnum):
    NORMAL = "normal"
    FINAL = "final"
    SUBFLOW = "subflow"


@dataclass(slots=True, frozen=True)
class Transition:
    """Transição (estado, evento) -> alvo protegida por guards ordenados."""

    event: str
    target: str
    guards: tuple[Guard, ...] = ()
    action: Action | None = None
    name: str | None = None


def on(
    event: str,
    target: str,
    *guards: Guard,
    action: Action | None = None,
    name: str | None = None,
) -> Transition:
    return Transition(event=event, target=target, guards=guards, action=action, name=name)


def on_input(
    target: str,
    *guards: Guard,
    action: Action | None = None,
    name: str | None = None,
) -> Transition:
    """Atalho para transições disparadas por input do usuário."""
    return Transition(
        event=EventType.INPUT, target=target, guards=guards, action=action, name=name
    )


def with_navigation(
    *transitions: Transition,
    back: str | None = None,
    exit: str | None = None,  # noqa: A002
) -> tuple[Transition, ...]:
    """Prefixa transições de voltar/sair antes das transições do estado."""
    nav: list[Transition] = []
    if back is not None:
        nav.append(on_input(back, is_back, name="back"))
    if exit is not None:
        nav.append(on_input(exit, is_exit, name="exit"))
    return (*nav, *transitions)


@dataclass(slots=True, frozen=True)
class SubFlow:
    """Relação pai -> filho: saída do filho vira evento do pai."""

    child: MachineDefinition
    outputs: Mapping[Any, str]
    default_event: str

    def event_for(self, output: Any) -> str:
        return self.outputs.get(output, self.default_event)


@dataclass(slots=True, frozen=True)
class StateDef:
    """Estado de uma máquina."""

    name: str
    kind: StateKind = StateKind.NORMAL
    transitions: tuple[Transition, ...] = ()
    message: str | None = None
    params: MessageParams | None = None
    on_entry: tuple[Action, ...] = ()
    subflow: SubFlow | None = None
    output: Any = None


@dataclass(slots=True, frozen=True, eq=False)
class MachineDefinition:
    """Máquina validada; use ``MachineBuilder`` para montar."""

    name: str
    initial: str
    states: Mapping[str, StateDef]
    global_guards: tuple[Guard, ...] = ()
    record_rejections: bool = True
    _index: Mapping[tuple[str, str], tuple[Transition, ...]] = field(
        default_factory=lambda: MappingProxyType({}), repr=False
    )

    def __post_init__(self) -> None:
        states = MappingProxyType(dict(self.states))
        object.__setattr__(self, "states", states)
        _validate(self)

        index: dict[tuple[str, str], list[Transition]] = {}
        for state in states.values():
            for transition in state.transitions:
                index.setdefault((state.name, str(transition.event)), []).append(transition)
        object.__setattr__(
            self,
            "_index",
            MappingProxyType({key: tuple(value) for key, value in index.items()}),
        )

    def state(self, name: str) -> StateDef:
        return self.states[name]

    def transitions_for(self, state: str, event_type: str) -> tuple[Transition, ...]:
        return self._index.get((state, str(event_type)), ())

    @property
    def final_states(self) -> frozenset[str]:
        return frozenset(s.name for s in self.states.values() if s.kind is StateKind.FINAL)


class MachineBuilder:
    """Montador fluente de ``MachineDefinition``.

    Exemplo:
        builder = MachineBuilder("login", initial="pin_entry")
        builder.state("pin_entry", on_input("success", pin_ok), message="login.enter_pin")
        builder.final("success", output="LOGIN_SUCCESS")
        definition = builder.build()
    """

    def __init__(
        self,
        name: str,
        initial: str,
        *,
        global_guards: Iterable[Guard] = (),
        record_rejections: bool = True,
    ) -> None:
        self._name = name
        self._initial = initial
        self._global_guards = tuple(global_guards)
        self._record_rejections = record_rejections
        self._states: dict[str, StateDef] = {}

    def _add(self, state: StateDef) -> MachineBuilder:
        if state.name in self._states:
            msg = f"Machine '{self._name}': duplicate state '{state.name}'"
            raise ConfigurationError(msg)
        self._states[state.name] = state
        return self

    def state(
        self,
        name: str,
        *transitions: Transition,
        message: str | None = None,
        params: MessageParams | None = None,
        on_entry: Iterable[Action] = (),
    ) -> MachineBuilder:
        return self._add(
            StateDef(
                name=name,
                transitions=tuple(transitions),
                message=message,
                params=params,
                on_entry=tuple(on_entry),
            )
        )

    def final(
        self,
        name: str,
        output: Any = None,
        *,
        message: str | None = None,
        params: MessageParams | None = None,
        on_entry: Iterable[Action] = (),
    ) -> MachineBuilder:
        return self._add(
            StateDef(
                name=name,
                kind=StateKind.FINAL,
                message=message,
                params=params,
                on_entry=tuple(on_entry),
                output=output,
            )
        )

    def subflow(
        self,
        name: str,
        child: MachineDefinition,
        *transitions: Transition,
        outputs: Mapping[Any, str],
        default_event: str,
        on_entry: Iterable[Action] = (),
    ) -> MachineBuilder:
        return self._add(
            StateDef(
                name=name,
                kind=StateKind.SUBFLOW,
                transitions=tuple(transitions),
                on_entry=tuple(on_entry),
                subflow=SubFlow(
                    child=child,
                    outputs=MappingProxyType(dict(outputs)),
                    default_event=default_event,
                ),
            )
        )

    def build(self) -> MachineDefinition:
        return MachineDefinition(
            name=self._name,
            initial=self._initial,
            states=self._states,
            global_guards=self._global_guards,
            record_rejections=self._record_rejections,
        )


def _validate(definition: MachineDefinition) -> None:
    name = definition.name
    states = definition.states

    if not states:
        raise ConfigurationError(f"Machine '{name}' has no states")
    if definition.initial not in states:
        raise ConfigurationError(f"Machine '{name}': unknown initial state '{definition.initial}'")

    for state in states.values():
        _validate_state(name, state, states)

    _validate_reachability(definition)


def _validate_state(name: str, state: StateDef, states: Mapping[str, StateDef]) -> None:
    where = f"Machine '{name}', state '{state.name}'"

    if state.kind is StateKind.FINAL and state.transitions:
        raise ConfigurationError(f"{where}: final states cannot declare transitions")

    if state.kind is StateKind.SUBFLOW:
        if state.subflow is None:
            raise ConfigurationError(f"{where}: sub-flow state without child definition")
        handled = {str(t.event) for t in state.transitions}
        expected = {*state.subflow.outputs.values(), state.subflow.default_event}
        missing = sorted(str(e) for e in expected if str(e) not in handled)
        if missing:
            raise ConfigurationError(f"{where}: no transition for sub-flow events {missing}")
    elif state.subflow is not None:
        raise ConfigurationError(f"{where}: only sub-flow states may own a child definition")

    for transition in state.transitions:
        if transition.target not in states:
            raise ConfigurationError(f"{where}: unknown target '{transition.target}'")
        _validate_guard_order(where, transition)


def _validate_guard_order(where: str, transition: Transition) -> None:
    seen_io: str | None = None
    for node in transition.guards:
        if node.uses_io():
            seen_io = node.name
        elif seen_io is not None:
            msg = (
                f"{where}: local guard '{node.name}' must precede "
                f"external guard '{seen_io}' on event '{transition.event}'"
            )
            raise ConfigurationError(msg)


def _validate_reachability(definition: MachineDefinition) -> None:
    edges = {
        state.name: {t.target for t in state.transitions} for state in definition.states.values()
    }
    finals = definition.final_states
    if not finals:
        raise ConfigurationError(f"Machine '{definition.name}' has no final state")

    reachable = _closure({definition.initial}, edges)

    # Estados que conseguem chegar a um final (busca reversa)
    reverse: dict[str, set[str]] = {name: set() for name in edges}
    for source, targets in edges.items():
        for target in targets:
            reverse[target].add(source)
    can_finish = _closure(set(finals), reverse)

    stuck = sorted(reachable - can_finish)
    if stuck:
        msg = f"Machine '{definition.name}': states {stuck} can never reach a final state"
        raise ConfigurationError(msg)


def _closure(start: set[str], edges: Mapping[str, set[str]]) -> set[str]:
    seen = set(start)
    frontier = list(start)
    while frontier:
        current = frontier.pop()
        for nxt in edges.get(current, ()):
            if nxt not in seen:
                seen.add(nxt)
                frontier.append(nxt)
    return seen
