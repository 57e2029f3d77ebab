"""Middleware HTTP: correlation_id por request e log de conclusão.

Gateways USSD nem sempre enviam ``X-Correlation-ID``; aceitamos também
``X-Request-ID``. Valores fora do formato (vazios, longos demais ou com
caracteres fora de ``[A-Za-z0-9._-]``) são descartados e um novo id é gerado.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import ContextVar, Token

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "x-correlation-id"
_FALLBACK_HEADERS = (CORRELATION_HEADER, "x-request-id")
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

_access_logger = logging.getLogger("ussd_engine.access")


def get_correlation_id() -> str:
    """Retorna o correlation_id corrente (ou vazio)."""

    return _correlation_id.get()


def set_correlation_id(value: str) -> Token[str]:
    """Define correlation_id fora do ciclo HTTP (scripts, sweeper)."""

    return _correlation_id.set(value)


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def _incoming_id(request: Request) -> str | None:
    for header in _FALLBACK_HEADERS:
        value = request.headers.get(header, "").strip()
        if value and _VALID_ID.match(value):
            return value
    return None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Propaga (ou gera) correlation_id e registra status e latência."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        correlation_id = _incoming_id(request) or new_correlation_id()
        token = _correlation_id.set(correlation_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            _access_logger.info(
                "Request completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
        finally:
            _correlation_id.reset(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
