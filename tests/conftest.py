from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from ussd_engine.api.app import create_app
from ussd_engine.application.container import build_container
from ussd_engine.application.flows import FlowDependencies, build_main_flow
from ussd_engine.application.session.registry import SessionRegistry
from ussd_engine.application.session_service import SessionService
from ussd_engine.config.limits import GuardLimits, GuardLimitsProvider
from ussd_engine.config.settings import Settings, get_settings
from ussd_engine.domain.pin_lockout import PinLockoutTracker
from ussd_engine.domain.protocols.external_query import ClaimRecord
from ussd_engine.domain.rate_limiter import InMemoryRateLimiter
from ussd_engine.domain.transaction_limits import TransactionLimitEnforcer
from ussd_engine.engine.definition import MachineDefinition
from ussd_engine.engine.guards import GuardEngine
from ussd_engine.infra.external_query_memory import InMemoryExternalQuery
from ussd_engine.infra.locale_catalog import CatalogLocaleResolver

PHONE = "254700000001"
PIN = "24680"
BUSINESS_DAY = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


class FakeClock:
    """Relógio monotônico controlado pelo teste."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def external_query() -> InMemoryExternalQuery:
    return InMemoryExternalQuery(
        balances={PHONE: Decimal("80000")},
        pins={PHONE: PIN},
        claims={"CLM-1001": ClaimRecord(claim_id="CLM-1001", status="in review")},
    )


@pytest.fixture()
def limits() -> GuardLimitsProvider:
    return GuardLimitsProvider(GuardLimits())


@pytest.fixture()
def pin_tracker(clock: FakeClock) -> PinLockoutTracker:
    return PinLockoutTracker(max_attempts=3, lockout_seconds=1800, clock=clock)


@pytest.fixture()
def transaction_limits() -> TransactionLimitEnforcer:
    return TransactionLimitEnforcer(
        daily_limit=Decimal("50000"),
        max_daily_count=10,
        minimum_balance=Decimal("10"),
        timezone="Africa/Nairobi",
        clock=lambda: BUSINESS_DAY,
    )


@pytest.fixture()
def flow_deps(
    external_query: InMemoryExternalQuery,
    pin_tracker: PinLockoutTracker,
    transaction_limits: TransactionLimitEnforcer,
    limits: GuardLimitsProvider,
) -> FlowDependencies:
    return FlowDependencies(
        external_query=external_query,
        pin_tracker=pin_tracker,
        transaction_limits=transaction_limits,
        limits=limits,
    )


@pytest.fixture()
def main_flow(flow_deps: FlowDependencies) -> MachineDefinition:
    return build_main_flow(flow_deps)


@pytest.fixture()
def registry(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(
        GuardEngine(slow_guard_threshold_ms=None),
        timeout_seconds=1800,
        clock=clock,
    )


@pytest.fixture()
def rate_limiter(clock: FakeClock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(max_requests=10, window_seconds=60, clock=clock)


@pytest.fixture()
def session_service(
    registry: SessionRegistry,
    main_flow: MachineDefinition,
    rate_limiter: InMemoryRateLimiter,
    pin_tracker: PinLockoutTracker,
    transaction_limits: TransactionLimitEnforcer,
    clock: FakeClock,
) -> SessionService:
    return SessionService(
        registry=registry,
        root_definition=main_flow,
        rate_limiter=rate_limiter,
        locale_resolver=CatalogLocaleResolver(),
        pin_tracker=pin_tracker,
        transaction_limits=transaction_limits,
        clock=clock,
    )


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch, external_query: InMemoryExternalQuery):
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("SESSION_SWEEP_INTERVAL_SECONDS", "0")
    get_settings.cache_clear()
    settings = Settings()
    container = build_container(settings, external_query=external_query)
    app = create_app(settings, container=container)
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()
