"""Guards: predicados avaliados antes de cada transição.

Um guard é uma variante etiquetada (folha, ALL, ANY ou NOT) avaliada por
um único avaliador recursivo. Regras:
- Guards não mutam o contexto. Efeitos colaterais (contadores de PIN,
  reservas de limite) ficam nos guards de domínio e nos colaboradores.
- ALL e ANY fazem curto-circuito; ANY sem sucesso junta os motivos com "; ".
- NOT nunca transforma indisponibilidade externa em sucesso.
- Guards de sistema da cadeia são avaliados primeiro (manutenção tem
  precedência sobre qualquer outro guard da transição).
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from ussd_engine.domain.enums import DenyReason, ErrorKind, GuardFamily
from ussd_engine.domain.errors import ExternalUnavailable
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.observability.logging import get_logger, mask_session
from ussd_engine.observability.timing import timed

logger: logging.Logger = get_logger(__name__)

_NO_DETAILS: Mapping[str, Any] = MappingProxyType({})

Compensation = Callable[[], object]


def run_compensations(actions: Iterable[Compensation], session_id: str, cause: str) -> None:
    """Executa compensações de permissões que não viraram transição."""
    actions = tuple(actions)
    if not actions:
        return
    for action in actions:
        action()
    logger.info(
        "Guard side effects compensated",
        extra={
            "session_id": mask_session(session_id),
            "cause": cause,
            "count": len(actions),
        },
    )


@dataclass(slots=True, frozen=True)
class GuardDecision:
    """Resultado da avaliação de um guard."""

    allowed: bool
    reason: str | None = None
    family: GuardFamily | None = None
    error_kind: ErrorKind | None = None
    retryable: bool = False
    details: Mapping[str, Any] = field(default_factory=lambda: _NO_DETAILS)
    guard_name: str | None = None
    compensations: tuple[Compensation, ...] = field(default=(), compare=False, repr=False)

    @classmethod
    def allow(cls, **details: Any) -> GuardDecision:
        return cls(allowed=True, details=MappingProxyType(details) if details else _NO_DETAILS)

    @classmethod
    def deny(
        cls,
        reason: str,
        family: GuardFamily | None = None,
        error_kind: ErrorKind = ErrorKind.INPUT_REJECTED,
        retryable: bool = False,
        **details: Any,
    ) -> GuardDecision:
        return cls(
            allowed=False,
            reason=str(reason),
            family=family,
            error_kind=error_kind,
            retryable=retryable,
            details=MappingProxyType(details) if details else _NO_DETAILS,
        )

    def with_compensation(self, *actions: Compensation) -> GuardDecision:
        """Anexa ações que desfazem efeitos desta permissão se ela não for efetivada."""
        return replace(self, compensations=self.compensations + actions)

    def as_tuple(self) -> tuple[bool, str | None]:
        return self.allowed, self.reason

    def __bool__(self) -> bool:
        return self.allowed


GuardResult = GuardDecision | bool
GuardPredicate = Callable[[MachineContext, MachineEvent], GuardResult | Awaitable[GuardResult]]


class GuardKind(StrEnum):
    LEAF = "leaf"
    ALL = "all"
    ANY = "any"
    NOT = "not"


@dataclass(slots=True, frozen=True)
class Guard:
    """Nó da árvore de guards.

    Folhas carregam ``predicate``; nós compostos carregam ``children``.
    ``reason``/``error_kind`` são usados quando o predicado retorna bool.
    """

    kind: GuardKind
    name: str
    family: GuardFamily
    predicate: GuardPredicate | None = None
    children: tuple[Guard, ...] = ()
    reason: str | None = None
    error_kind: ErrorKind = ErrorKind.INPUT_REJECTED
    performs_io: bool = False

    def uses_io(self) -> bool:
        """True se este guard (ou algum filho) consulta colaborador externo."""
        if self.kind is GuardKind.LEAF:
            return self.performs_io
        return any(child.uses_io() for child in self.children)


def guard(
    name: str,
    family: GuardFamily,
    predicate: GuardPredicate,
    *,
    reason: str | None = None,
    error_kind: ErrorKind = ErrorKind.INPUT_REJECTED,
    performs_io: bool = False,
) -> Guard:
    """Cria um guard folha."""
    return Guard(
        kind=GuardKind.LEAF,
        name=name,
        family=family,
        predicate=predicate,
        reason=reason,
        error_kind=error_kind,
        performs_io=performs_io,
    )


def all_of(*guards: Guard, name: str | None = None) -> Guard:
    """Conjunção com curto-circuito na primeira negação."""
    return Guard(
        kind=GuardKind.ALL,
        name=name or "all(" + ",".join(g.name for g in guards) + ")",
        family=GuardFamily.COMPOSITE,
        children=tuple(guards),
    )


def any_of(*guards: Guard, name: str | None = None) -> Guard:
    """Disjunção com curto-circuito no primeiro sucesso."""
    return Guard(
        kind=GuardKind.ANY,
        name=name or "any(" + ",".join(g.name for g in guards) + ")",
        family=GuardFamily.COMPOSITE,
        children=tuple(guards),
    )


def not_(
    inner: Guard,
    *,
    reason: str | None = None,
    name: str | None = None,
    error_kind: ErrorKind = ErrorKind.INPUT_REJECTED,
) -> Guard:
    """Negação; ``reason`` é o motivo quando o guard interno passa."""
    return Guard(
        kind=GuardKind.NOT,
        name=name or f"not({inner.name})",
        family=GuardFamily.COMPOSITE,
        children=(inner,),
        reason=reason,
        error_kind=error_kind,
    )


class GuardEngine:
    """Avaliador recursivo de guards e cadeias de guards."""

    def __init__(self, slow_guard_threshold_ms: float | None = 1000.0) -> None:
        self._slow_threshold_ms = slow_guard_threshold_ms

    async def evaluate(
        self,
        node: Guard,
        context: MachineContext,
        event: MachineEvent,
    ) -> GuardDecision:
        """Avalia um guard (folha ou composto) e retorna a decisão."""
        if node.kind is GuardKind.LEAF:
            return await self._evaluate_leaf(node, context, event)

        if node.kind is GuardKind.ALL:
            return await self._evaluate_all(node.children, context, event)

        if node.kind is GuardKind.ANY:
            denials: list[GuardDecision] = []
            for child in node.children:
                decision = await self.evaluate(child, context, event)
                if decision.allowed:
                    return decision
                denials.append(decision)
            if not denials:
                return GuardDecision.deny(
                    DenyReason.CONDITION_NOT_MET, GuardFamily.COMPOSITE
                )
            last = denials[-1]
            return GuardDecision(
                allowed=False,
                reason="; ".join(d.reason for d in denials if d.reason),
                family=GuardFamily.COMPOSITE,
                error_kind=last.error_kind,
                retryable=any(d.retryable for d in denials),
                guard_name=node.name,
            )

        # NOT
        inner = await self.evaluate(node.children[0], context, event)
        if not inner.allowed:
            if inner.error_kind is ErrorKind.EXTERNAL_UNAVAILABLE:
                return inner
            return GuardDecision.allow()
        run_compensations(inner.compensations, context.session_id, cause=node.name)
        return GuardDecision(
            allowed=False,
            reason=node.reason or f"{node.children[0].name} must not hold",
            family=node.children[0].family,
            error_kind=node.error_kind,
            guard_name=node.name,
        )

    async def evaluate_chain(
        self,
        guards: Iterable[Guard],
        context: MachineContext,
        event: MachineEvent,
    ) -> GuardDecision:
        """Avalia uma cadeia ordenada; guards de sistema vêm primeiro.

        Retorna a primeira negação, ou uma permissão com os ``details``
        acumulados dos guards que passaram.
        """
        chain = tuple(guards)
        ordered = [g for g in chain if g.family is GuardFamily.SYSTEM] + [
            g for g in chain if g.family is not GuardFamily.SYSTEM
        ]
        decision = await self._evaluate_all(ordered, context, event)
        if not decision.allowed:
            logger.debug(
                "Guard denied",
                extra={
                    "session_id": mask_session(context.session_id),
                    "guard": decision.guard_name,
                    "reason": decision.reason,
                },
            )
        return decision

    async def _evaluate_all(
        self,
        guards: Iterable[Guard],
        context: MachineContext,
        event: MachineEvent,
    ) -> GuardDecision:
        details: dict[str, Any] = {}
        compensations: list[Compensation] = []
        for node in guards:
            decision = await self.evaluate(node, context, event)
            if not decision.allowed:
                # Permissões anteriores da cadeia não viram transição
                run_compensations(compensations, context.session_id, cause=node.name)
                if decision.guard_name is None:
                    decision = replace(decision, guard_name=node.name)
                return decision
            details.update(decision.details)
            compensations.extend(decision.compensations)
        return GuardDecision.allow(**details).with_compensation(*compensations)

    async def _evaluate_leaf(
        self,
        node: Guard,
        context: MachineContext,
        event: MachineEvent,
    ) -> GuardDecision:
        if node.predicate is None:
            msg = f"Leaf guard '{node.name}' has no predicate"
            raise TypeError(msg)

        try:
            if node.performs_io:
                with timed(f"guard:{node.name}", warn_above_ms=self._slow_threshold_ms):
                    raw = await _call(node.predicate, context, event)
            else:
                raw = await _call(node.predicate, context, event)
        except ExternalUnavailable as exc:
            logger.warning(
                "External query unavailable during guard",
                extra={
                    "session_id": mask_session(context.session_id),
                    "guard": node.name,
                    "operation": exc.operation,
                },
            )
            return GuardDecision(
                allowed=False,
                reason=DenyReason.EXTERNAL_UNAVAILABLE,
                family=node.family,
                error_kind=ErrorKind.EXTERNAL_UNAVAILABLE,
                retryable=True,
                guard_name=node.name,
            )

        if isinstance(raw, GuardDecision):
            if raw.allowed:
                return raw
            return GuardDecision(
                allowed=False,
                reason=raw.reason or node.reason or DenyReason.CONDITION_NOT_MET,
                family=raw.family or node.family,
                error_kind=raw.error_kind or node.error_kind,
                retryable=raw.retryable,
                details=raw.details,
                guard_name=node.name,
            )

        if raw:
            return GuardDecision.allow()
        return GuardDecision(
            allowed=False,
            reason=node.reason or DenyReason.CONDITION_NOT_MET,
            family=node.family,
            error_kind=node.error_kind,
            guard_name=node.name,
        )


async def _call(
    predicate: GuardPredicate,
    context: MachineContext,
    event: MachineEvent,
) -> GuardResult:
    result = predicate(context, event)
    if inspect.isawaitable(result):
        return await result
    return result
