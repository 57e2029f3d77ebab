"""Dependências injetadas na montagem dos fluxos."""

from __future__ import annotations

from dataclasses import dataclass

from ussd_engine.config.limits import GuardLimitsProvider
from ussd_engine.domain.pin_lockout import PinLockoutTracker
from ussd_engine.domain.protocols.external_query import ExternalQueryPort
from ussd_engine.domain.transaction_limits import TransactionLimitEnforcer


@dataclass(slots=True, frozen=True)
class FlowDependencies:
    """Colaboradores compartilhados pelos guards dos fluxos."""

    external_query: ExternalQueryPort
    pin_tracker: PinLockoutTracker
    transaction_limits: TransactionLimitEnforcer
    limits: GuardLimitsProvider
    pin_length: int = 5
