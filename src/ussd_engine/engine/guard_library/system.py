"""Guards de sistema: disponibilidade do serviço e modo de manutenção.

Leem o snapshot corrente de ``GuardLimits`` a cada avaliação, então uma
troca de snapshot (ex.: ligar manutenção) vale para sessões em andamento
já no próximo evento.
"""

from __future__ import annotations

from ussd_engine.config.limits import GuardLimitsProvider
from ussd_engine.domain.enums import DenyReason, ErrorKind, GuardFamily
from ussd_engine.engine.context import MachineContext, MachineEvent
from ussd_engine.engine.guards import Guard, guard


def service_available(limits: GuardLimitsProvider) -> Guard:
    def _check(context: MachineContext, event: MachineEvent) -> bool:
        return limits.current.service_available

    return guard(
        "service_available",
        GuardFamily.SYSTEM,
        _check,
        reason=DenyReason.SERVICE_UNAVAILABLE,
        error_kind=ErrorKind.SERVICE_UNAVAILABLE,
    )


def not_in_maintenance(limits: GuardLimitsProvider) -> Guard:
    """Nega incondicionalmente enquanto o modo de manutenção estiver ligado."""

    def _check(context: MachineContext, event: MachineEvent) -> bool:
        return not limits.current.maintenance_mode

    return guard(
        "not_in_maintenance",
        GuardFamily.SYSTEM,
        _check,
        reason=DenyReason.SERVICE_UNAVAILABLE,
        error_kind=ErrorKind.SERVICE_UNAVAILABLE,
    )


def system_guards(limits: GuardLimitsProvider) -> tuple[Guard, ...]:
    """Guards globais padrão de uma máquina raiz."""
    return service_available(limits), not_in_maintenance(limits)
