"""Testes do GuardEngine: folhas, composição e cadeias."""

from __future__ import annotations

import pytest

from ussd_engine.domain.enums import DenyReason, ErrorKind, GuardFamily
from ussd_engine.domain.errors import ExternalUnavailable
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.guards import (
    GuardDecision,
    GuardEngine,
    all_of,
    any_of,
    guard,
    not_,
)

CTX = MachineContext(
    session_id="sess-0001", identity_key="254700000001", service_code="*384#", locale="eng"
)
EVENT = MachineEvent.from_input("1")


def _const(name: str, value: bool, reason: str = "nope", family=GuardFamily.VALIDATION):
    return guard(name, family, lambda c, e: value, reason=reason)


class _Recorder:
    """Guard com I/O que registra as chamadas."""

    def __init__(self, allowed: bool = True) -> None:
        self.calls = 0
        self.allowed = allowed

    async def __call__(self, context: MachineContext, event: MachineEvent) -> GuardDecision:
        self.calls += 1
        if self.allowed:
            return GuardDecision.allow(balance="100")
        return GuardDecision.deny(DenyReason.INSUFFICIENT_BALANCE, GuardFamily.DOMAIN)


@pytest.fixture
def engine() -> GuardEngine:
    return GuardEngine(slow_guard_threshold_ms=None)


class TestLeafGuards:
    """Guards folha síncronos e assíncronos."""

    @pytest.mark.asyncio
    async def test_bool_predicate_uses_declared_reason(self, engine: GuardEngine):
        """Predicado bool negado usa o motivo e o tipo declarados no guard."""
        node = guard(
            "locked",
            GuardFamily.DOMAIN,
            lambda c, e: False,
            reason=DenyReason.LOCKED,
            error_kind=ErrorKind.LOCKED,
        )

        decision = await engine.evaluate(node, CTX, EVENT)

        assert decision.as_tuple() == (False, "locked")
        assert decision.error_kind is ErrorKind.LOCKED
        assert decision.guard_name == "locked"

    @pytest.mark.asyncio
    async def test_async_predicate_returns_details(self, engine: GuardEngine):
        """Predicado assíncrono pode devolver GuardDecision com details."""
        recorder = _Recorder()
        node = guard("balance", GuardFamily.DOMAIN, recorder, performs_io=True)

        decision = await engine.evaluate(node, CTX, EVENT)

        assert decision.allowed
        assert decision.details["balance"] == "100"
        assert recorder.calls == 1

    @pytest.mark.asyncio
    async def test_external_unavailable_becomes_retryable_denial(self, engine: GuardEngine):
        """ExternalUnavailable vira negação retentável, não exceção."""

        async def _offline(context, event):
            raise ExternalUnavailable("get_balance", "timeout")

        node = guard("balance", GuardFamily.DOMAIN, _offline, performs_io=True)

        decision = await engine.evaluate(node, CTX, EVENT)

        assert not decision.allowed
        assert decision.reason == DenyReason.EXTERNAL_UNAVAILABLE
        assert decision.error_kind is ErrorKind.EXTERNAL_UNAVAILABLE
        assert decision.retryable is True

    @pytest.mark.asyncio
    async def test_missing_reason_defaults_to_condition_not_met(self, engine: GuardEngine):
        node = guard("anon", GuardFamily.DOMAIN, lambda c, e: False)

        decision = await engine.evaluate(node, CTX, EVENT)

        assert decision.reason == DenyReason.CONDITION_NOT_MET


class TestComposition:
    """ALL / ANY / NOT."""

    @pytest.mark.asyncio
    async def test_all_short_circuits_before_io(self, engine: GuardEngine):
        """Guard com I/O não é chamado se um guard local anterior negou."""
        recorder = _Recorder()
        node = all_of(
            _const("format", False, reason=DenyReason.INVALID_PIN_FORMAT),
            guard("verify", GuardFamily.DOMAIN, recorder, performs_io=True),
        )

        decision = await engine.evaluate(node, CTX, EVENT)

        assert decision.reason == DenyReason.INVALID_PIN_FORMAT
        assert recorder.calls == 0

    @pytest.mark.asyncio
    async def test_any_joins_reasons_when_all_fail(self, engine: GuardEngine):
        node = any_of(_const("a", False, reason="first"), _const("b", False, reason="second"))

        decision = await engine.evaluate(node, CTX, EVENT)

        assert not decision.allowed
        assert decision.reason == "first; second"
        assert decision.family is GuardFamily.COMPOSITE

    @pytest.mark.asyncio
    async def test_any_stops_at_first_success(self, engine: GuardEngine):
        recorder = _Recorder()
        node = any_of(
            _const("a", True),
            guard("io", GuardFamily.DOMAIN, recorder, performs_io=True),
        )

        assert (await engine.evaluate(node, CTX, EVENT)).allowed
        assert recorder.calls == 0

    @pytest.mark.asyncio
    async def test_not_inverts_result(self, engine: GuardEngine):
        denied = await engine.evaluate(not_(_const("a", True), reason="must not"), CTX, EVENT)
        allowed = await engine.evaluate(not_(_const("a", False)), CTX, EVENT)

        assert denied.as_tuple() == (False, "must not")
        assert allowed.allowed

    @pytest.mark.asyncio
    async def test_not_keeps_external_unavailable(self, engine: GuardEngine):
        """NOT nunca converte indisponibilidade externa em sucesso."""

        def _offline(context, event):
            raise ExternalUnavailable("lookup_claim")

        node = not_(guard("claim", GuardFamily.DOMAIN, _offline, performs_io=True))

        decision = await engine.evaluate(node, CTX, EVENT)

        assert not decision.allowed
        assert decision.error_kind is ErrorKind.EXTERNAL_UNAVAILABLE


class TestEvaluateChain:
    """Cadeias ordenadas de guards de transição."""

    @pytest.mark.asyncio
    async def test_system_guards_run_first(self, engine: GuardEngine):
        """Guard de sistema nega antes de qualquer outro, mesmo declarado por último."""
        recorder = _Recorder()
        chain = [
            guard("io", GuardFamily.DOMAIN, recorder, performs_io=True),
            _const(
                "maintenance",
                False,
                reason=DenyReason.SERVICE_UNAVAILABLE,
                family=GuardFamily.SYSTEM,
            ),
        ]

        decision = await engine.evaluate_chain(chain, CTX, EVENT)

        assert decision.reason == DenyReason.SERVICE_UNAVAILABLE
        assert recorder.calls == 0

    @pytest.mark.asyncio
    async def test_details_are_merged_on_success(self, engine: GuardEngine):
        chain = [
            guard("a", GuardFamily.DOMAIN, lambda c, e: GuardDecision.allow(x=1)),
            guard("b", GuardFamily.DOMAIN, lambda c, e: GuardDecision.allow(y=2)),
        ]

        decision = await engine.evaluate_chain(chain, CTX, EVENT)

        assert decision.allowed
        assert dict(decision.details) == {"x": 1, "y": 2}

    @pytest.mark.asyncio
    async def test_empty_chain_allows(self, engine: GuardEngine):
        assert (await engine.evaluate_chain([], CTX, EVENT)).allowed


class TestCompensations:
    """Efeitos de permissões que não viram transição são desfeitos."""

    @staticmethod
    def _reserving(released: list[str]):
        return guard(
            "reserve",
            GuardFamily.DOMAIN,
            lambda c, e: GuardDecision.allow(reservation_id="r-1").with_compensation(
                lambda: released.append("r-1")
            ),
        )

    @pytest.mark.asyncio
    async def test_later_denial_runs_compensation(self, engine: GuardEngine):
        released: list[str] = []
        chain = [self._reserving(released), _const("after", False)]

        decision = await engine.evaluate_chain(chain, CTX, EVENT)

        assert not decision.allowed
        assert decision.guard_name == "after"
        assert released == ["r-1"]

    @pytest.mark.asyncio
    async def test_allowed_chain_carries_compensation(self, engine: GuardEngine):
        """Permissão da cadeia devolve as compensações sem executá-las."""
        released: list[str] = []

        decision = await engine.evaluate_chain(
            [self._reserving(released), _const("after", True)], CTX, EVENT
        )

        assert decision.allowed
        assert released == []
        assert len(decision.compensations) == 1

    @pytest.mark.asyncio
    async def test_not_runs_inner_compensation(self, engine: GuardEngine):
        released: list[str] = []

        decision = await engine.evaluate(not_(self._reserving(released)), CTX, EVENT)

        assert not decision.allowed
        assert released == ["r-1"]
