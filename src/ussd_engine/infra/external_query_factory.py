"""Factory para ExternalQueryPort."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from ussd_engine.domain.protocols.external_query import ExternalQueryPort
from ussd_engine.infra.external_query_http import HttpExternalQuery
from ussd_engine.infra.external_query_memory import InMemoryExternalQuery
from ussd_engine.infra.http import create_http_client
from ussd_engine.observability.logging import get_logger

if TYPE_CHECKING:
    from ussd_engine.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_external_query_from_settings(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ExternalQueryPort:
    """Cria a porta de consultas externas conforme ``EXTERNAL_QUERY_BACKEND``.

    Raises:
        ValueError: Backend inválido, URL ausente ou memory em produção
    """
    backend = settings.external_query_backend.lower()

    if backend == "memory":
        if settings.is_production:
            msg = "EXTERNAL_QUERY_BACKEND=memory is not allowed in production"
            raise ValueError(msg)
        logger.warning("Using in-memory external query backend (dev only)")
        return InMemoryExternalQuery()

    if backend == "http":
        if not settings.external_query_base_url:
            msg = "EXTERNAL_QUERY_BASE_URL required for http backend"
            raise ValueError(msg)
        logger.info("Using HTTP external query backend")
        return HttpExternalQuery(create_http_client(settings, transport=transport))

    msg = f"Unknown external query backend: {backend}"
    raise ValueError(msg)
