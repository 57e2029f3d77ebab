"""Testes de Settings e do snapshot de limites."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from ussd_engine.config.limits import GuardLimits, GuardLimitsProvider
from ussd_engine.config.settings import Settings


class TestSettings:
    def test_defaults_are_valid(self):
        assert Settings(environment="development").validate_all() == []

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PIN_MAX_ATTEMPTS", "4")
        monkeypatch.setenv("TRANSACTION_DAILY_LIMIT", "75000")

        settings = Settings()

        assert settings.pin_max_attempts == 4
        assert settings.transaction_daily_limit == Decimal("75000")

    @pytest.mark.parametrize(
        ("environment", "dev", "staging", "prod"),
        [
            ("local", True, False, False),
            ("STAGE", False, True, False),
            ("prod", False, False, True),
        ],
    )
    def test_environment_flags(self, environment, dev, staging, prod):
        settings = Settings(environment=environment)

        assert settings.is_development is dev
        assert settings.is_staging is staging
        assert settings.is_production is prod

    def test_guard_limits_conversion(self):
        limits = Settings(pin_lockout_minutes=10, session_timeout_minutes=5).guard_limits()

        assert limits.pin_lockout_seconds == 600
        assert limits.session_timeout_seconds == 300

    def test_invalid_limits(self):
        settings = Settings(
            pin_max_attempts=0, transaction_daily_limit=Decimal("0"), timezone="Mars/Base"
        )

        errors = settings.validate_limits()

        assert any("PIN_MAX_ATTEMPTS" in e for e in errors)
        assert any("TRANSACTION_DAILY_LIMIT" in e for e in errors)
        assert any("TIMEZONE" in e for e in errors)

    def test_production_requires_shared_backends(self):
        settings = Settings(environment="production")

        errors = settings.validate_all()

        assert any("RATE_LIMITER_BACKEND=memory" in e for e in errors)
        assert any("EXTERNAL_QUERY_BACKEND=memory" in e for e in errors)

    def test_production_requires_https(self):
        settings = Settings(
            environment="production",
            external_query_backend="http",
            external_query_base_url="http://backend",
        )

        assert any("https" in e for e in settings.validate_external_query())


class TestGuardLimits:
    def test_snapshot_is_immutable(self):
        limits = GuardLimits()

        with pytest.raises(ValidationError):
            limits.maintenance_mode = True

    def test_provider_swaps_whole_snapshot(self):
        provider = GuardLimitsProvider()
        before = provider.current

        after = provider.update(maintenance_mode=True)

        assert provider.current is after
        assert before.maintenance_mode is False
        assert after.maintenance_mode is True

    def test_environment_presets(self):
        assert GuardLimits.for_environment("production").rate_limit_requests == 5
        assert GuardLimits.for_environment("dev").pin_max_attempts == 5
        assert GuardLimits.for_environment("staging") == GuardLimits()
