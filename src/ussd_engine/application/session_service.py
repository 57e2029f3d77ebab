"""Serviço de sessões USSD: ponto de entrada de cada evento inbound.

Fluxo de ``handle``:
1. Rate limit por identidade (antes de qualquer trabalho)
2. Resolve a sessão (cria na primeira referência ou após expiração)
3. Sessão nova recebe START; demais recebem o input normalizado
4. Renderiza a tela (texto do estado + texto do erro, se houver)
5. Estado terminal encerra a sessão (resposta END)

Falhas inesperadas são logadas e viram resposta terminal
"service unavailable"; nunca propagam para o gateway.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ussd_engine.application.input_parser import InputKind, parse_ussd_input
from ussd_engine.application.session.registry import SessionRegistry
from ussd_engine.config.settings import USSD_MAX_MESSAGE_LENGTH
from ussd_engine.domain.enums import DenyReason, ErrorKind
from ussd_engine.domain.errors import SessionNotFound
from ussd_engine.domain.pin_lockout import PinLockoutTracker
from ussd_engine.domain.protocols.locale import LocaleResolver
from ussd_engine.domain.rate_limiter import RateLimiter
from ussd_engine.domain.transaction_limits import TransactionLimitEnforcer
from ussd_engine.engine.context import MachineEvent
from ussd_engine.engine.definition import MachineDefinition
from ussd_engine.engine.runtime import RuntimeResult, RuntimeSnapshot
from ussd_engine.observability.logging import get_logger, mask_identity, mask_session
from ussd_engine.observability.middleware import new_correlation_id, set_correlation_id
from ussd_engine.observability.timing import timed

logger: logging.Logger = get_logger(__name__)


class InboundSessionEvent(BaseModel):
    """Evento inbound no formato do gateway (camelCase aceito).

    ``identityKey`` e ``rawInput`` são aceitos como sinônimos de
    ``phoneNumber`` e ``text``.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    session_id: str = Field(alias="sessionId", pattern=r"^[A-Za-z0-9_-]+$", max_length=100)
    phone_number: str = Field(
        validation_alias=AliasChoices("phoneNumber", "identityKey", "phone_number"),
        min_length=4,
        max_length=20,
    )
    service_code: str = Field(alias="serviceCode", pattern=r"^\*\d+(\*\d+)*#$")
    text: str = Field(
        default="",
        validation_alias=AliasChoices("text", "rawInput"),
        max_length=500,
    )
    locale: str | None = None


class SessionResponse(BaseModel):
    """Resposta renderizada para o gateway."""

    session_id: str
    message: str
    end_session: bool
    state_path: list[str] = Field(default_factory=list)
    error_kind: ErrorKind | None = None
    error_reason: str | None = None
    reservation_id: str | None = None

    @property
    def formatted(self) -> str:
        """Texto no formato de gateway: ``CON <texto>`` ou ``END <texto>``."""
        prefix = "END" if self.end_session else "CON"
        return f"{prefix} {self.message}"


def truncate_message(message: str, limit: int = USSD_MAX_MESSAGE_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


class SessionService:
    """Orquestra rate limiter, registry, runtime e renderização de texto."""

    def __init__(
        self,
        registry: SessionRegistry,
        root_definition: MachineDefinition,
        rate_limiter: RateLimiter,
        locale_resolver: LocaleResolver,
        pin_tracker: PinLockoutTracker | None = None,
        transaction_limits: TransactionLimitEnforcer | None = None,
        default_locale: str = "eng",
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._registry = registry
        self._root = root_definition
        self._rate_limiter = rate_limiter
        self._locale = locale_resolver
        self._pin_tracker = pin_tracker
        self._transaction_limits = transaction_limits
        self._default_locale = default_locale
        self._clock = clock or time.monotonic

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def handle(self, event: InboundSessionEvent, now: float | None = None) -> SessionResponse:
        """Processa um evento inbound e retorna a tela seguinte."""
        current = self._clock() if now is None else now
        locale = event.locale or self._default_locale

        if not self._rate_limiter.allow(event.phone_number, now=current):
            logger.warning(
                "Request rate limited",
                extra={
                    "session_id": mask_session(event.session_id),
                    "identity": mask_identity(event.phone_number),
                },
            )
            return self._error_response(
                event.session_id, locale, DenyReason.RATE_LIMITED, ErrorKind.RATE_LIMITED
            )

        try:
            with timed("session_service.handle"):
                return await self._handle(event, locale, current)
        except Exception as e:
            logger.exception(
                "Unexpected error handling session event",
                extra={
                    "session_id": mask_session(event.session_id),
                    "error_type": type(e).__name__,
                },
            )
            self._registry.evict(event.session_id, reason="error")
            return self._error_response(
                event.session_id,
                locale,
                DenyReason.SERVICE_UNAVAILABLE,
                ErrorKind.SERVICE_UNAVAILABLE,
                end_session=True,
            )

    async def _handle(
        self,
        event: InboundSessionEvent,
        locale: str,
        now: float,
    ) -> SessionResponse:
        session = self._registry.resolve(
            event.session_id,
            self._root,
            identity_key=event.phone_number,
            service_code=event.service_code,
            locale=locale,
            now=now,
        )
        is_new = session.created_in_request

        parsed = parse_ussd_input(event.text)
        if is_new or parsed.kind is InputKind.START:
            # Abertura (ou reexibição): START mostra a tela inicial
            result = await self._registry.dispatch(session.session_id, MachineEvent.start(), now)
        else:
            try:
                result = await self._registry.dispatch(session.session_id, parsed.to_event(), now)
            except SessionNotFound:
                # Sessão removida durante a espera pelo lock
                return self._error_response(
                    event.session_id,
                    locale,
                    DenyReason.SESSION_EXPIRED,
                    ErrorKind.SESSION_EXPIRED,
                    end_session=True,
                )

        if result.discarded:
            return self._error_response(
                event.session_id,
                locale,
                DenyReason.SESSION_EXPIRED,
                ErrorKind.SESSION_EXPIRED,
                end_session=True,
            )

        response = self._render(event.session_id, locale, result)
        if is_new and session.resumed_after_expiry:
            notice = self._locale.resolve_text(f"error.{DenyReason.SESSION_EXPIRED}", locale)
            response = response.model_copy(
                update={
                    "message": truncate_message(f"{notice}\n{response.message}"),
                    "error_kind": ErrorKind.SESSION_EXPIRED,
                    "error_reason": str(DenyReason.SESSION_EXPIRED),
                }
            )

        logger.info(
            "Session event handled",
            extra={
                "session_id": mask_session(event.session_id),
                "input_kind": str(parsed.kind),
                "state": result.dotted_path,
                "transitioned": result.transitioned,
                "error_kind": str(result.error_kind) if result.error_kind else None,
                "end_session": response.end_session,
            },
        )
        return response

    def _render(self, session_id: str, locale: str, result: RuntimeResult) -> SessionResponse:
        params: dict[str, Any] = dict(result.message_params)
        body = (
            self._locale.resolve_text(result.message_key, locale, params)
            if result.message_key
            else ""
        )

        reason = result.error_reason
        if reason is not None:
            error_params: Mapping[str, Any] = {**params, **result.decision.details}
            error_text = self._locale.resolve_text(f"error.{reason}", locale, error_params)
            body = f"{error_text}\n{body}" if body else error_text

        return SessionResponse(
            session_id=session_id,
            message=truncate_message(body),
            end_session=result.is_terminal,
            state_path=list(result.state_path),
            error_kind=result.error_kind,
            error_reason=reason,
            reservation_id=result.context.get("reservation_id") if result.is_terminal else None,
        )

    def _error_response(
        self,
        session_id: str,
        locale: str,
        reason: DenyReason,
        kind: ErrorKind,
        end_session: bool = False,
    ) -> SessionResponse:
        return SessionResponse(
            session_id=session_id,
            message=truncate_message(self._locale.resolve_text(f"error.{reason}", locale)),
            end_session=end_session,
            error_kind=kind,
            error_reason=str(reason),
        )

    def end_session(self, session_id: str) -> bool:
        """Cancelamento explícito (ex.: gateway avisou que o usuário desligou)."""
        return self._registry.evict(session_id, reason="cancelled")

    def release_reservation(self, reservation_id: str) -> bool:
        """Libera a reserva de uma transferência que o backend não concluiu."""
        if self._transaction_limits is None:
            return False
        return self._transaction_limits.release(reservation_id)

    def active_sessions(self, now: float | None = None) -> list[str]:
        return [info.session_id for info in self._registry.list_sessions(now)]

    def debug_session(self, session_id: str, now: float | None = None) -> RuntimeSnapshot | None:
        session = self._registry.get(session_id, now)
        if session is None:
            return None
        return session.runtime.snapshot()

    def sweep(self, now: float | None = None, wall_clock: datetime | None = None) -> dict[str, int]:
        """Varre sessões, janelas de rate limit, bloqueios e acumuladores vencidos."""
        current = self._clock() if now is None else now
        removed = {
            "sessions": self._registry.sweep_expired(current),
            "rate_windows": self._rate_limiter.sweep(current),
            "pin_lockouts": self._pin_tracker.sweep() if self._pin_tracker else 0,
            "transaction_days": (
                self._transaction_limits.sweep(wall_clock) if self._transaction_limits else 0
            ),
        }
        if any(removed.values()):
            logger.info("Sweep completed", extra=removed)
        return removed

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Loop de sweep periódico (cancelado no shutdown)."""
        while True:
            await asyncio.sleep(interval_seconds)
            set_correlation_id(f"sweep-{new_correlation_id()[:12]}")
            try:
                self.sweep()
            except Exception as e:
                logger.error("Sweep failed", extra={"error": str(e)})
