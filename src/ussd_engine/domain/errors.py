"""Exceções do motor de sessões.

Negações de guard nunca levantam exceção: viram ``GuardDecision`` com
``ErrorKind``. As exceções abaixo cobrem erros de construção, expiração
de sessão e indisponibilidade de colaboradores externos.
"""

from __future__ import annotations

from ussd_engine.domain.enums import ErrorKind


class EngineError(Exception):
    """Base de todas as exceções do ussd_engine."""

    kind: ErrorKind = ErrorKind.INPUT_REJECTED


class ConfigurationError(EngineError):
    """Definição de máquina malformada (detectada na construção)."""

    kind = ErrorKind.CONFIGURATION_ERROR


class SessionExpired(EngineError):
    """Sessão expirou por inatividade e continuidade foi exigida."""

    kind = ErrorKind.SESSION_EXPIRED

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session expired: {session_id[:8]}...")
        self.session_id = session_id


class SessionNotFound(EngineError):
    """Operação sobre sessão inexistente (ou já removida)."""

    kind = ErrorKind.SESSION_EXPIRED

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id[:8]}...")
        self.session_id = session_id


class ExternalUnavailable(EngineError):
    """Colaborador externo indisponível (timeout, circuito aberto, 5xx).

    Distinto de uma negação de negócio: o chamador pode tentar novamente.
    """

    kind = ErrorKind.EXTERNAL_UNAVAILABLE

    def __init__(self, operation: str, reason: str | None = None) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"External query '{operation}' unavailable{detail}")
        self.operation = operation
        self.reason = reason
