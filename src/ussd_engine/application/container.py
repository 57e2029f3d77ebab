"""Montagem dos colaboradores do serviço a partir de Settings.

Valida a configuração, cria os stores (rate limit, bloqueio de PIN,
limites diários), a porta externa e a árvore de fluxos. Definição de
fluxo inválida levanta ``ConfigurationError`` aqui, no startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ussd_engine.application.flows import FlowDependencies, build_main_flow
from ussd_engine.application.session.registry import SessionRegistry
from ussd_engine.application.session_service import SessionService
from ussd_engine.config.limits import GuardLimits, GuardLimitsProvider
from ussd_engine.config.settings import Settings
from ussd_engine.domain.pin_lockout import PinLockoutTracker
from ussd_engine.domain.protocols.external_query import ExternalQueryPort
from ussd_engine.domain.protocols.locale import LocaleResolver
from ussd_engine.domain.rate_limiter import RateLimiter
from ussd_engine.domain.transaction_limits import TransactionLimitEnforcer
from ussd_engine.engine.definition import MachineDefinition
from ussd_engine.engine.guards import GuardEngine
from ussd_engine.infra.external_query_factory import create_external_query_from_settings
from ussd_engine.infra.locale_catalog import CatalogLocaleResolver
from ussd_engine.infra.rate_limiter_factory import create_rate_limiter_from_settings
from ussd_engine.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class Container:
    settings: Settings
    limits: GuardLimitsProvider
    external_query: ExternalQueryPort
    pin_tracker: PinLockoutTracker
    transaction_limits: TransactionLimitEnforcer
    rate_limiter: RateLimiter
    locale_resolver: LocaleResolver
    registry: SessionRegistry
    root_definition: MachineDefinition
    service: SessionService


def build_container(
    settings: Settings,
    *,
    limits: GuardLimits | None = None,
    external_query: ExternalQueryPort | None = None,
    rate_limiter: RateLimiter | None = None,
    locale_resolver: LocaleResolver | None = None,
) -> Container:
    """Cria o grafo de objetos do serviço.

    Args:
        settings: Configurações carregadas do ambiente
        limits: Snapshot inicial de limites (padrão: ``settings.guard_limits()``)
        external_query: Porta externa já construída (testes/simulação)
        rate_limiter: Rate limiter já construído (testes)
        locale_resolver: Resolver de textos (padrão: catálogo embutido)

    Raises:
        ValueError: Configuração inválida
        ConfigurationError: Definição de fluxo inválida
    """
    errors = settings.validate_all()
    if errors:
        raise ValueError(f"Configuração inválida: {'; '.join(errors)}")

    provider = GuardLimitsProvider(limits or settings.guard_limits())
    snapshot = provider.current

    pin_tracker = PinLockoutTracker.from_limits(snapshot)
    transaction_limits = TransactionLimitEnforcer.from_limits(snapshot)
    port = external_query or create_external_query_from_settings(settings)

    root = build_main_flow(
        FlowDependencies(
            external_query=port,
            pin_tracker=pin_tracker,
            transaction_limits=transaction_limits,
            limits=provider,
            pin_length=settings.pin_length,
        )
    )

    registry = SessionRegistry(
        GuardEngine(slow_guard_threshold_ms=settings.slow_guard_threshold_ms),
        timeout_seconds=snapshot.session_timeout_seconds,
    )
    limiter = rate_limiter or create_rate_limiter_from_settings(settings)
    resolver = locale_resolver or CatalogLocaleResolver(default_locale=settings.default_locale)

    service = SessionService(
        registry=registry,
        root_definition=root,
        rate_limiter=limiter,
        locale_resolver=resolver,
        pin_tracker=pin_tracker,
        transaction_limits=transaction_limits,
        default_locale=settings.default_locale,
    )

    logger.info(
        "Service container built",
        extra={
            "environment": settings.environment,
            "root_machine": root.name,
            "session_timeout_seconds": snapshot.session_timeout_seconds,
        },
    )
    return Container(
        settings=settings,
        limits=provider,
        external_query=port,
        pin_tracker=pin_tracker,
        transaction_limits=transaction_limits,
        rate_limiter=limiter,
        locale_resolver=resolver,
        registry=registry,
        root_definition=root,
        service=service,
    )
