"""Runtime de máquina hierárquica.

Cada ``dispatch`` calcula um novo quadro (estado + contexto + filho) sem
mutar o atual; o quadro só é efetivado depois de todas as avaliações de
guard, e apenas se ``is_alive()`` ainda for verdadeiro. Assim um evento
concorrente com a remoção da sessão é descartado sem efeitos.

Composição:
- estado de sub-fluxo possui um runtime filho criado na entrada
- eventos são repassados ao filho; quando ele termina, a saída vira um
  evento sintético do pai despachado na mesma chamada
- eventos cujo tipo é uma saída mapeada do sub-fluxo vão direto ao pai
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from ussd_engine.domain.enums import DenyReason, ErrorKind, EventType, GuardFamily
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.definition import MachineDefinition, StateDef, StateKind
from ussd_engine.engine.guards import (
    Compensation,
    GuardDecision,
    GuardEngine,
    run_compensations,
)
from ussd_engine.observability.logging import get_logger, mask_session

logger: logging.Logger = get_logger(__name__)

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(slots=True, frozen=True)
class _Frame:
    definition: MachineDefinition
    state: str
    context: MachineContext
    child: _Frame | None = None
    done: bool = False
    output: Any = None

    def path(self) -> tuple[str, ...]:
        if self.child is None:
            return (self.state,)
        return (self.state, *self.child.path())

    def leaf(self) -> _Frame:
        return self if self.child is None else self.child.leaf()


@dataclass(slots=True, frozen=True)
class _Step:
    frame: _Frame
    transitioned: bool
    decision: GuardDecision | None
    compensations: tuple[Compensation, ...] = ()


@dataclass(slots=True, frozen=True)
class RuntimeResult:
    """Resultado de um dispatch (ou da renderização do estado corrente)."""

    state_path: tuple[str, ...]
    context: MachineContext
    transitioned: bool = False
    decision: GuardDecision | None = None
    output: Any = None
    is_terminal: bool = False
    message_key: str | None = None
    message_params: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    discarded: bool = False

    @property
    def rejected(self) -> bool:
        return self.decision is not None and not self.decision.allowed

    @property
    def error_reason(self) -> str | None:
        return self.decision.reason if self.rejected else None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.decision.error_kind if self.rejected else None

    @property
    def dotted_path(self) -> str:
        return ".".join(self.state_path)


class RuntimeSnapshot(BaseModel):
    """Visão serializável do runtime para monitoramento (sem valores de contexto)."""

    machine: str
    state_path: list[str]
    done: bool
    output: str | None = None
    last_error: str | None = None
    data_keys: list[str]


def _enter(
    definition: MachineDefinition,
    state_name: str,
    context: MachineContext,
    event: MachineEvent,
) -> _Frame:
    state = definition.state(state_name)
    for action in state.on_entry:
        context = action(context, event)

    if state.kind is StateKind.FINAL:
        output = state.output(context) if callable(state.output) else state.output
        return _Frame(definition, state_name, context, done=True, output=output)

    if state.kind is StateKind.SUBFLOW and state.subflow is not None:
        child = _start(state.subflow.child, context.for_child())
        return _Frame(definition, state_name, context, child=child)

    return _Frame(definition, state_name, context)


def _start(definition: MachineDefinition, context: MachineContext) -> _Frame:
    return _enter(definition, definition.initial, context, MachineEvent.start())


def _reject(frame: _Frame, decision: GuardDecision) -> _Frame:
    if not frame.definition.record_rejections:
        return frame
    context = frame.context.with_error(decision.reason, decision.error_kind, decision.details)
    return replace(frame, context=context)


def _is_parent_event(state: StateDef, event: MachineEvent) -> bool:
    if state.subflow is None or event.type in (EventType.INPUT, EventType.START):
        return False
    return event.type in state.subflow.outputs.values() or event.type == state.subflow.default_event


class MachineRuntime:
    """Instância viva de uma ``MachineDefinition`` para uma sessão."""

    def __init__(
        self,
        definition: MachineDefinition,
        context: MachineContext,
        guard_engine: GuardEngine | None = None,
    ) -> None:
        self._definition = definition
        self._engine = guard_engine or GuardEngine()
        self._frame = _start(definition, context)

    @property
    def definition(self) -> MachineDefinition:
        return self._definition

    @property
    def context(self) -> MachineContext:
        """Contexto da máquina raiz."""
        return self._frame.context

    @property
    def active_context(self) -> MachineContext:
        """Contexto do sub-fluxo mais interno ativo."""
        return self._frame.leaf().context

    @property
    def state_path(self) -> tuple[str, ...]:
        return (self._definition.name, *self._frame.path())

    @property
    def done(self) -> bool:
        return self._frame.done

    @property
    def output(self) -> Any:
        return self._frame.output

    def current(self) -> RuntimeResult:
        """Resultado que representa o estado atual, sem despachar evento."""
        return self._result(self._frame, transitioned=False, decision=None)

    async def dispatch(
        self,
        event: MachineEvent,
        is_alive: Callable[[], bool] | None = None,
    ) -> RuntimeResult:
        """Despacha um evento; no máximo uma transição observável.

        Args:
            event: Evento de entrada
            is_alive: Anexado ao evento (guards com I/O o consultam após cada
                espera) e verificado de novo ao fim; se retornar False as
                compensações das permissões são executadas, o resultado é
                descartado e nada é efetivado

        Returns:
            RuntimeResult com o novo caminho de estados e a negação, se houver
        """
        if self._frame.done:
            return self.current()

        if is_alive is not None:
            event = replace(event, is_alive=is_alive)
        step = await self._step(self._frame, event)

        if not event.session_alive():
            run_compensations(
                step.compensations, self._frame.context.session_id, cause="dispatch_discarded"
            )
            logger.info(
                "Dispatch discarded (session no longer active)",
                extra={"session_id": mask_session(self._frame.context.session_id)},
            )
            return replace(self.current(), discarded=True)

        previous_path = self.state_path
        self._frame = step.frame
        result = self._result(step.frame, step.transitioned, step.decision)

        logger.debug(
            "Machine dispatch",
            extra={
                "session_id": mask_session(self._frame.context.session_id),
                "event_type": str(event.type),
                "from_state": ".".join(previous_path),
                "to_state": result.dotted_path,
                "transitioned": step.transitioned,
                "reason": result.error_reason,
            },
        )
        return result

    def snapshot(self) -> RuntimeSnapshot:
        leaf = self._frame.leaf()
        output = self._frame.output
        return RuntimeSnapshot(
            machine=self._definition.name,
            state_path=list(self.state_path),
            done=self._frame.done,
            output=None if output is None else str(output),
            last_error=leaf.context.last_error,
            data_keys=sorted(leaf.context.data),
        )

    async def _step(self, frame: _Frame, event: MachineEvent) -> _Step:
        definition = frame.definition
        if frame.done:
            return _Step(frame, False, None)

        if definition.global_guards:
            decision = await self._engine.evaluate_chain(
                definition.global_guards, frame.context, event
            )
            if not decision.allowed:
                return _Step(_reject(frame, decision), False, decision)

        state = definition.state(frame.state)
        if (
            state.kind is StateKind.SUBFLOW
            and state.subflow is not None
            and frame.child is not None
            and not _is_parent_event(state, event)
        ):
            child_step = await self._step(frame.child, event)
            child = child_step.frame
            if not child.done:
                return replace(child_step, frame=replace(frame, child=child))

            synthetic = MachineEvent(
                type=state.subflow.event_for(child.output),
                payload=MappingProxyType(
                    {"output": child.output, "data": dict(child.context.data)}
                ),
                is_alive=event.is_alive,
            )
            logger.debug(
                "Sub-flow finished",
                extra={
                    "session_id": mask_session(frame.context.session_id),
                    "child": child.definition.name,
                    "parent_event": str(synthetic.type),
                },
            )
            step = await self._transition(replace(frame, child=child), synthetic)
            if step.transitioned:
                return replace(step, compensations=child_step.compensations + step.compensations)
            # Pai recusou a saída: filho reinicia no estado inicial
            run_compensations(
                child_step.compensations, frame.context.session_id, cause="subflow_output_refused"
            )
            restarted = _start(state.subflow.child, frame.context.for_child())
            return _Step(replace(step.frame, child=restarted), False, step.decision)

        return await self._transition(frame, event)

    async def _transition(self, frame: _Frame, event: MachineEvent) -> _Step:
        definition = frame.definition
        candidates = definition.transitions_for(frame.state, event.type)

        if not candidates:
            if event.type == EventType.START:
                return _Step(frame, False, None)
            decision = GuardDecision.deny(DenyReason.INVALID_SELECTION, GuardFamily.NAVIGATION)
            return _Step(_reject(frame, decision), False, decision)

        denied: GuardDecision | None = None
        for transition in candidates:
            decision = await self._engine.evaluate_chain(transition.guards, frame.context, event)
            if decision.allowed:
                context = frame.context.clear_error()
                if transition.action is not None:
                    context = transition.action(context, event.with_payload(decision.details))
                return _Step(
                    _enter(definition, transition.target, context, event),
                    True,
                    decision,
                    decision.compensations,
                )
            # Negação além da seleção de menu prevalece sobre "invalid selection"
            if denied is None or (
                denied.family is GuardFamily.NAVIGATION
                and decision.family is not GuardFamily.NAVIGATION
            ):
                denied = decision

        assert denied is not None
        return _Step(_reject(frame, denied), False, denied)

    def _result(
        self,
        frame: _Frame,
        transitioned: bool,
        decision: GuardDecision | None,
    ) -> RuntimeResult:
        leaf = frame.leaf()
        state = leaf.definition.state(leaf.state)
        params = dict(state.params(leaf.context)) if state.params else {}
        return RuntimeResult(
            state_path=(self._definition.name, *frame.path()),
            context=leaf.context,
            transitioned=transitioned,
            decision=decision,
            output=frame.output,
            is_terminal=frame.done,
            message_key=state.message,
            message_params=MappingProxyType(params),
        )
