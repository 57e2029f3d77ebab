"""Testes do SessionService: rate limit, expiração, renderização e falhas."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from ussd_engine.application.session_service import (
    InboundSessionEvent,
    SessionResponse,
    truncate_message,
)
from ussd_engine.domain.enums import DenyReason, ErrorKind

PHONE = "254700000001"


def _event(text: str = "", session_id: str = "sess-svc-1", **overrides) -> InboundSessionEvent:
    payload = {
        "sessionId": session_id,
        "phoneNumber": PHONE,
        "serviceCode": "*384#",
        "text": text,
    }
    payload.update(overrides)
    return InboundSessionEvent.model_validate(payload)


class TestInboundEvent:
    def test_accepts_gateway_aliases(self):
        event = _event("1*2")

        assert event.session_id == "sess-svc-1"
        assert event.service_code == "*384#"

    def test_accepts_identity_key_and_raw_input(self):
        event = InboundSessionEvent.model_validate(
            {
                "sessionId": "sess-svc-1",
                "identityKey": PHONE,
                "serviceCode": "*384*1#",
                "rawInput": "1*2",
            }
        )

        assert event.phone_number == PHONE
        assert event.text == "1*2"

    @pytest.mark.parametrize("code", ["384", "*384", "*abc#"])
    def test_rejects_invalid_service_code(self, code):
        with pytest.raises(ValueError):
            _event(serviceCode=code)


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_request_beyond_limit_is_refused(self, session_service):
        """10 requisições por janela: a 11ª é recusada sem tocar a sessão."""
        responses = [await session_service.handle(_event()) for _ in range(11)]

        assert all(r.error_kind is None for r in responses[:10])
        refused = responses[10]
        assert refused.error_kind is ErrorKind.RATE_LIMITED
        assert refused.error_reason == DenyReason.RATE_LIMITED
        assert not refused.end_session
        assert refused.message.startswith("Too many requests")

    @pytest.mark.asyncio
    async def test_limit_resets_after_window(self, session_service, clock):
        for _ in range(11):
            await session_service.handle(_event())
        clock.advance(60)

        response = await session_service.handle(_event())

        assert response.error_kind is None


class TestExpiry:
    @pytest.mark.asyncio
    async def test_idle_session_restarts_with_notice(self, session_service, clock):
        await session_service.handle(_event())
        await session_service.handle(_event("2"))
        clock.advance(1801)

        response = await session_service.handle(_event("2*1"))

        assert response.state_path == ["main", "pre_menu"]
        assert response.error_kind is ErrorKind.SESSION_EXPIRED
        assert response.message.startswith("Your session expired. Starting again.\nWelcome")

    @pytest.mark.asyncio
    async def test_start_input_redisplays_current_screen(self, session_service):
        await session_service.handle(_event())
        await session_service.handle(_event("2"))

        response = await session_service.handle(_event(""))

        assert response.state_path == ["main", "account_menu", "menu"]
        assert response.error_kind is None


class TestRendering:
    def test_truncate_message(self):
        assert truncate_message("short") == "short"
        long = "x" * 200
        truncated = truncate_message(long)
        assert len(truncated) == 182
        assert truncated.endswith("...")

    def test_formatted_prefix(self):
        ongoing = SessionResponse(session_id="s", message="Hi", end_session=False)
        final = SessionResponse(session_id="s", message="Bye", end_session=True)

        assert ongoing.formatted == "CON Hi"
        assert final.formatted == "END Bye"

    @pytest.mark.asyncio
    async def test_locale_fallback(self, session_service):
        swahili = await session_service.handle(_event(locale="swa"))
        other = await session_service.handle(_event(session_id="sess-svc-2", locale="fra"))

        assert swahili.message.startswith("Karibu")
        assert other.message.startswith("Welcome")


class TestFailures:
    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_terminal_unavailable(self, session_service):
        await session_service.handle(_event())
        session_service.registry.dispatch = AsyncMock(side_effect=RuntimeError("boom"))

        response = await session_service.handle(_event("1"))

        assert response.end_session
        assert response.error_kind is ErrorKind.SERVICE_UNAVAILABLE
        assert "sess-svc-1" not in session_service.registry

    @pytest.mark.asyncio
    async def test_end_session(self, session_service):
        await session_service.handle(_event())

        assert session_service.end_session("sess-svc-1") is True
        assert session_service.active_sessions() == []
        assert session_service.debug_session("sess-svc-1") is None


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_clears_expired_state(
        self, session_service, clock, pin_tracker, transaction_limits
    ):
        await session_service.handle(_event())
        pin_tracker.record_failure(PHONE)
        transaction_limits.check_and_reserve(PHONE, Decimal("100"))
        clock.advance(3600)

        removed = session_service.sweep(
            wall_clock=datetime(2026, 3, 10, 9, 0, tzinfo=UTC) + timedelta(days=1)
        )

        assert removed == {
            "sessions": 1,
            "rate_windows": 1,
            "pin_lockouts": 1,
            "transaction_days": 1,
        }

    @pytest.mark.asyncio
    async def test_debug_session_snapshot(self, session_service):
        await session_service.handle(_event())

        snapshot = session_service.debug_session("sess-svc-1")

        assert snapshot.machine == "main"
        assert snapshot.state_path == ["main", "pre_menu"]
        assert not snapshot.done
