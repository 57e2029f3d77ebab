"""Logs JSON do motor de sessões.

Todo record sai com ``correlation_id`` e ``service``. PIN, MSISDN completo e
texto digitado nunca vão para ``extra``: use ``mask_identity`` e
``mask_session``.
"""

from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

from ussd_engine.observability.middleware import get_correlation_id

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s %(service)s"


class ServiceContextFilter(logging.Filter):
    """Completa o record com o correlation_id corrente e o nome do serviço."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        record.service = self._service_name
        return True


def configure_logging(level: str, service_name: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        JsonFormatter(_FORMAT, rename_fields={"levelname": "level", "name": "logger"})
    )
    handler.addFilter(ServiceContextFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def mask_session(session_id: str) -> str:
    """Prefixo de 8 caracteres do session_id."""
    return session_id[:8] + "..."


def mask_identity(identity_key: str) -> str:
    """MSISDN com apenas os 4 últimos dígitos."""
    if len(identity_key) <= 4:
        return "***"
    return "***" + identity_key[-4:]
