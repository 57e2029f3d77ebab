"""SessionRegistry: dono exclusivo das sessões vivas.

Responsabilidades:
- Resolver session_id -> Session (cria na primeira referência)
- Expirar por inatividade: lazy (no acesso) e periódica (sweep)
- Serializar eventos da mesma sessão (um asyncio.Lock por sessão)
- Descartar resultados de dispatch cuja sessão foi removida durante a
  avaliação (verificação de geração)
"""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable

from ussd_engine.application.session.models import Session, SessionInfo
from ussd_engine.domain.errors import SessionExpired, SessionNotFound
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.definition import MachineDefinition
from ussd_engine.engine.guards import GuardEngine
from ussd_engine.engine.runtime import MachineRuntime, RuntimeResult
from ussd_engine.observability.logging import get_logger, mask_session

logger: logging.Logger = get_logger(__name__)


class SessionRegistry:
    """Mapa em memória de sessões vivas com TTL de inatividade.

    ⚠️ Estado por instância: em múltiplas instâncias o gateway deve manter
    afinidade de sessão (mesmo session_id -> mesma instância).

    ⚠️ Um único event loop: o mapa de sessões não tem lock de thread e cada
    sessão serializa seus eventos com ``asyncio.Lock``. Chame a registry só
    de dentro do loop que a criou (workers do uvicorn são processos, cada um
    com a sua registry).
    """

    def __init__(
        self,
        guard_engine: GuardEngine | None = None,
        timeout_seconds: int = 1800,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._engine = guard_engine or GuardEngine()
        self._timeout = timeout_seconds
        self._clock = clock or time.monotonic
        self._sessions: dict[str, Session] = {}
        self._generations = itertools.count(1)

    @property
    def timeout_seconds(self) -> int:
        return self._timeout

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    def _is_expired(self, session: Session, now: float) -> bool:
        return now - session.last_activity_at > self._timeout

    def is_current(self, session: Session) -> bool:
        """True se ``session`` ainda é a sessão registrada para o seu id."""
        current = self._sessions.get(session.session_id)
        return current is not None and current.generation == session.generation

    def resolve(
        self,
        session_id: str,
        root_definition: MachineDefinition,
        *,
        identity_key: str,
        service_code: str,
        locale: str,
        now: float | None = None,
        require_continuity: bool = False,
    ) -> Session:
        """Retorna a sessão viva ou cria uma nova no estado inicial da raiz.

        Sessão expirada é removida e substituída por uma nova (marcada com
        ``resumed_after_expiry``), exceto com ``require_continuity=True``,
        quando ``SessionExpired`` é levantada.
        """
        current = self._now(now)
        resumed = False

        existing = self._sessions.get(session_id)
        if existing is not None:
            if not self._is_expired(existing, current):
                existing.created_in_request = False
                return existing
            self._remove(existing, reason="expired")
            if require_continuity:
                raise SessionExpired(session_id)
            resumed = True

        context = MachineContext(
            session_id=session_id,
            identity_key=identity_key,
            service_code=service_code,
            locale=locale,
        )
        session = Session(
            session_id=session_id,
            identity_key=identity_key,
            service_code=service_code,
            locale=locale,
            runtime=MachineRuntime(root_definition, context, self._engine),
            last_activity_at=current,
            generation=next(self._generations),
            resumed_after_expiry=resumed,
        )
        self._sessions[session_id] = session

        logger.info(
            "Session created",
            extra={
                "session_id": mask_session(session_id),
                "machine": root_definition.name,
                "resumed_after_expiry": resumed,
                "active_sessions": len(self._sessions),
            },
        )
        return session

    def get(self, session_id: str, now: float | None = None) -> Session | None:
        """Consulta com expiração lazy (não cria)."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._is_expired(session, self._now(now)):
            self._remove(session, reason="expired")
            return None
        return session

    def touch(self, session_id: str, now: float | None = None) -> bool:
        """Renova o TTL de inatividade; False se a sessão não existe."""
        session = self.get(session_id, now)
        if session is None:
            return False
        session.last_activity_at = self._now(now)
        return True

    def evict(self, session_id: str, reason: str = "cancelled") -> bool:
        """Remove a sessão (cancelamento explícito ou estado terminal)."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        self._remove(session, reason=reason)
        return True

    def sweep_expired(self, now: float | None = None) -> int:
        """Remove todas as sessões expiradas; retorna quantidade removida."""
        current = self._now(now)
        expired = [s for s in self._sessions.values() if self._is_expired(s, current)]
        for session in expired:
            self._remove(session, reason="expired")
        if expired:
            logger.info(
                "Expired sessions swept",
                extra={"removed": len(expired), "active_sessions": len(self._sessions)},
            )
        return len(expired)

    async def dispatch(
        self,
        session_id: str,
        event: MachineEvent,
        now: float | None = None,
    ) -> RuntimeResult:
        """Despacha evento na sessão, serializado com os demais da mesma sessão.

        Raises:
            SessionNotFound: Sessão inexistente, expirada ou removida
        """
        session = self.get(session_id, now)
        if session is None:
            raise SessionNotFound(session_id)

        async with session.lock:
            if not self.is_current(session):
                raise SessionNotFound(session_id)

            result = await session.runtime.dispatch(
                event, is_alive=lambda: self.is_current(session)
            )
            if result.discarded:
                return result

            session.last_activity_at = self._now(now)
            if result.is_terminal:
                self._remove(session, reason="terminal")
            return result

    def active_session_ids(self) -> list[str]:
        return list(self._sessions)

    def list_sessions(self, now: float | None = None) -> list[SessionInfo]:
        current = self._now(now)
        return [
            session.info(current, self._timeout)
            for session in self._sessions.values()
            if not self._is_expired(session, current)
        ]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _remove(self, session: Session, reason: str) -> None:
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
            logger.info(
                "Session removed",
                extra={
                    "session_id": mask_session(session.session_id),
                    "reason": reason,
                    "state": ".".join(session.runtime.state_path),
                },
            )
