"""Re-exports dos Protocolos de domínio para uso por Engine e Application."""

from __future__ import annotations

from ussd_engine.domain.protocols.external_query import ClaimRecord, ExternalQueryPort
from ussd_engine.domain.protocols.locale import LocaleResolver

__all__ = [
    "ClaimRecord",
    "ExternalQueryPort",
    "LocaleResolver",
]
