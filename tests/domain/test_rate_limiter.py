"""Testes para rate limiter por identidade."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from ussd_engine.domain.rate_limiter import InMemoryRateLimiter, RedisRateLimiter

PHONE = "254700000001"


class TestInMemoryRateLimiter:
    """Janela fixa em memória."""

    def test_allows_up_to_max_requests(self):
        """As N primeiras chamadas da janela são aceitas; a N+1 é recusada."""
        limiter = InMemoryRateLimiter(max_requests=10, window_seconds=60)

        results = [limiter.allow(PHONE, now=100.0 + i) for i in range(11)]

        assert results[:10] == [True] * 10
        assert results[10] is False
        assert limiter.is_limited(PHONE, now=111.0)

    def test_window_reset(self):
        """Após a janela, a contagem volta a zero."""
        limiter = InMemoryRateLimiter(max_requests=2, window_seconds=60)
        limiter.allow(PHONE, now=0.0)
        limiter.allow(PHONE, now=1.0)
        assert limiter.allow(PHONE, now=2.0) is False

        assert limiter.allow(PHONE, now=60.0) is True
        assert limiter.snapshot(PHONE).count == 1

    def test_identities_are_independent(self):
        limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60)

        assert limiter.allow("254700000001", now=0.0)
        assert limiter.allow("254700000002", now=0.0)
        assert not limiter.allow("254700000001", now=1.0)

    def test_is_limited_does_not_count(self):
        limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60)

        assert limiter.is_limited(PHONE, now=0.0) is False
        assert limiter.allow(PHONE, now=0.0) is True

    def test_sweep_removes_stale_windows(self, clock):
        limiter = InMemoryRateLimiter(
            max_requests=5, window_seconds=60, grace_seconds=30, clock=clock
        )
        limiter.allow(PHONE)
        clock.advance(89)
        assert limiter.sweep() == 0

        clock.advance(1)
        assert limiter.sweep() == 1
        assert len(limiter) == 0

    def test_sweep_keeps_window_refreshed_while_waiting(self):
        """Janela renovada enquanto o sweep aguardava o lock da identidade fica."""
        limiter = InMemoryRateLimiter(max_requests=5, window_seconds=60, grace_seconds=30)
        limiter.allow(PHONE, now=0.0)
        removed: list[int] = []

        with limiter._lock_for(PHONE):
            sweeper = threading.Thread(target=lambda: removed.append(limiter.sweep(now=100.0)))
            sweeper.start()
            sweeper.join(timeout=0.2)
            waiting = sweeper.is_alive()
            limiter._windows[PHONE].window_start = 100.0
        sweeper.join(timeout=2)

        assert waiting
        assert removed == [0]
        assert limiter.snapshot(PHONE) is not None
        assert limiter.allow(PHONE, now=101.0) is True

    def test_invalid_configuration(self):
        with pytest.raises(ValueError, match="max_requests"):
            InMemoryRateLimiter(max_requests=0)


class TestRedisRateLimiter:
    """INCR + EXPIRE no Redis."""

    def test_first_request_sets_expiry(self):
        mock_redis = MagicMock()
        mock_redis.incr.return_value = 1
        limiter = RedisRateLimiter(mock_redis, max_requests=3, window_seconds=60)

        assert limiter.allow(PHONE) is True
        mock_redis.incr.assert_called_once_with(f"ratelimit:{PHONE}")
        mock_redis.expire.assert_called_once_with(f"ratelimit:{PHONE}", 60)

    def test_refuses_after_max(self):
        mock_redis = MagicMock()
        mock_redis.incr.return_value = 4
        limiter = RedisRateLimiter(mock_redis, max_requests=3, window_seconds=60)

        assert limiter.allow(PHONE) is False
        mock_redis.expire.assert_not_called()

    def test_fail_open_on_redis_error(self):
        """Falha do Redis não bloqueia o usuário."""
        mock_redis = MagicMock()
        mock_redis.incr.side_effect = ConnectionError("down")
        limiter = RedisRateLimiter(mock_redis)

        assert limiter.allow(PHONE) is True

    def test_is_limited_reads_counter(self):
        mock_redis = MagicMock()
        mock_redis.get.return_value = b"3"
        limiter = RedisRateLimiter(mock_redis, max_requests=3)

        assert limiter.is_limited(PHONE) is True
        mock_redis.get.return_value = None
        assert limiter.is_limited(PHONE) is False
