"""Testes para factory de rate limiter."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from ussd_engine.config.settings import Settings
from ussd_engine.domain.rate_limiter import InMemoryRateLimiter, RedisRateLimiter
from ussd_engine.infra.rate_limiter_factory import (
    create_rate_limiter,
    create_rate_limiter_from_settings,
)


class TestCreateRateLimiter:
    """Testes para factory básica."""

    def test_create_memory_limiter(self):
        """Verifica criação de limiter em memória."""
        limiter = create_rate_limiter(backend="memory", max_requests=10, window_seconds=60)

        assert isinstance(limiter, InMemoryRateLimiter)
        assert limiter._max_requests == 10
        assert limiter._window == 60

    def test_create_redis_limiter(self):
        """Verifica criação de limiter Redis."""
        redis_client = MagicMock()
        limiter = create_rate_limiter(
            backend="redis",
            max_requests=15,
            window_seconds=90,
            redis_client=redis_client,
        )

        assert isinstance(limiter, RedisRateLimiter)
        assert limiter._max_requests == 15
        assert limiter._window == 90

    def test_redis_requires_client(self):
        """Verifica que Redis backend requer cliente."""
        with pytest.raises(ValueError, match="redis_client required"):
            create_rate_limiter(backend="redis", redis_client=None)

    def test_invalid_backend(self):
        """Verifica rejeição de backend inválido."""
        with pytest.raises(ValueError, match="Unknown rate limiter backend"):
            create_rate_limiter(backend="invalid")


class TestCreateRateLimiterFromSettings:
    """Testes para factory a partir de Settings."""

    def test_development_uses_memory(self):
        settings = Settings(environment="development", rate_limit_requests=7)

        limiter = create_rate_limiter_from_settings(settings)

        assert isinstance(limiter, InMemoryRateLimiter)
        assert limiter._max_requests == 7

    def test_production_rejects_memory(self):
        settings = Settings(environment="production", rate_limiter_backend="memory")

        with pytest.raises(ValueError, match="unsuitable for production"):
            create_rate_limiter_from_settings(settings)

    def test_redis_client_is_auto_created(self):
        settings = Settings(
            environment="production",
            rate_limiter_backend="redis",
            redis_url="redis://cache:6379",
        )

        with patch("redis.from_url") as from_url:
            limiter = create_rate_limiter_from_settings(settings)

        from_url.assert_called_once_with("redis://cache:6379")
        assert isinstance(limiter, RedisRateLimiter)

    def test_redis_with_injected_client(self):
        settings = Settings(environment="staging", rate_limiter_backend="redis")

        limiter = create_rate_limiter_from_settings(settings, redis_client=MagicMock())

        assert isinstance(limiter, RedisRateLimiter)
