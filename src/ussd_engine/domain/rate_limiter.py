"""Rate limiting por identidade em janela fixa.

Implementa:
- RateLimiter: contrato abstrato (allow / is_limited / sweep)
- InMemoryRateLimiter: janelas em memória com lock por chave
- RedisRateLimiter: INCR + EXPIRE para múltiplas instâncias

Regra da janela fixa: as N primeiras chamadas de uma janela são aceitas;
a partir da N+1 a chamada é recusada até a janela expirar, quando a
contagem volta a zero.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from ussd_engine.observability.logging import get_logger, mask_identity

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class RateLimitWindow:
    """Janela corrente de uma identidade."""

    identity_key: str
    window_start: float
    count: int = 0


class RateLimiter(ABC):
    """Contrato abstrato para rate limiting por identidade."""

    @abstractmethod
    def allow(self, identity_key: str, now: float | None = None) -> bool:
        """Registra requisição e informa se está dentro do limite.

        Args:
            identity_key: Identidade (MSISDN) do chamador
            now: Instante da requisição em segundos (padrão: clock)

        Returns:
            True se permitida; False se o limite da janela foi atingido
        """

    @abstractmethod
    def is_limited(self, identity_key: str, now: float | None = None) -> bool:
        """Consulta sem registrar: True se a janela corrente está esgotada."""

    def sweep(self, now: float | None = None) -> int:
        """Remove janelas expiradas; retorna quantidade removida."""
        return 0


class InMemoryRateLimiter(RateLimiter):
    """Rate limiter em memória para desenvolvimento e instância única.

    ⚠️ Não compartilha janelas entre instâncias.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: int = 60,
        grace_seconds: int = 60,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_requests < 1 or window_seconds < 1:
            msg = "max_requests and window_seconds must be >= 1"
            raise ValueError(msg)
        self._max_requests = max_requests
        self._window = window_seconds
        self._grace = grace_seconds
        self._clock = clock or time.monotonic
        self._windows: dict[str, RateLimitWindow] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _lock_for(self, identity_key: str) -> Iterator[None]:
        """Segura o lock da identidade; refaz se o sweep o descartou na espera."""
        while True:
            with self._registry_lock:
                lock = self._key_locks.get(identity_key)
                if lock is None:
                    lock = threading.Lock()
                    self._key_locks[identity_key] = lock
            with lock:
                if self._key_locks.get(identity_key) is lock:
                    yield
                    return


    def allow(self, identity_key: str, now: float | None = None) -> bool:
        current = self._clock() if now is None else now

        with self._lock_for(identity_key):
            window = self._windows.get(identity_key)
            if window is None or current - window.window_start >= self._window:
                window = RateLimitWindow(identity_key=identity_key, window_start=current)
                self._windows[identity_key] = window

            if window.count >= self._max_requests:
                logger.warning(
                    "Rate limit exceeded",
                    extra={
                        "identity": mask_identity(identity_key),
                        "count": window.count,
                        "max_requests": self._max_requests,
                        "window_seconds": self._window,
                    },
                )
                return False

            window.count += 1
            return True

    def is_limited(self, identity_key: str, now: float | None = None) -> bool:
        current = self._clock() if now is None else now
        window = self._windows.get(identity_key)
        if window is None or current - window.window_start >= self._window:
            return False
        return window.count >= self._max_requests

    def snapshot(self, identity_key: str) -> RateLimitWindow | None:
        """Cópia da janela corrente (observabilidade e testes)."""
        window = self._windows.get(identity_key)
        if window is None:
            return None
        return RateLimitWindow(window.identity_key, window.window_start, window.count)

    def sweep(self, now: float | None = None) -> int:
        current = self._clock() if now is None else now
        cutoff = self._window + self._grace
        removed = 0

        with self._registry_lock:
            candidates = [
                key
                for key, window in list(self._windows.items())
                if current - window.window_start >= cutoff
            ]
        for key in candidates:
            with self._lock_for(key):
                window = self._windows.get(key)
                if window is None or current - window.window_start < cutoff:
                    continue
                with self._registry_lock:
                    del self._windows[key]
                    self._key_locks.pop(key, None)
                removed += 1

        if removed:
            logger.debug("Rate limit windows swept", extra={"removed": removed})
        return removed

    def __len__(self) -> int:
        return len(self._windows)


class RedisRateLimiter(RateLimiter):
    """Rate limiter via Redis com TTL nativo.

    Características:
    - Usa INCR com EXPIRE para atomicidade
    - Escalável para múltiplas instâncias
    - Em falha do Redis, permite a requisição (fail-open) e loga erro
    """

    def __init__(
        self,
        redis_client: object,
        max_requests: int = 10,
        window_seconds: int = 60,
        key_prefix: str = "ratelimit",
    ) -> None:
        self._redis = redis_client
        self._max_requests = max_requests
        self._window = window_seconds
        self._prefix = key_prefix

    def _key(self, identity_key: str) -> str:
        return f"{self._prefix}:{identity_key}"

    def allow(self, identity_key: str, now: float | None = None) -> bool:
        key = self._key(identity_key)

        try:
            count = self._redis.incr(key)
            if count == 1:
                # Primeira ocorrência: abre a janela
                self._redis.expire(key, self._window)
        except Exception as e:
            logger.error(
                "Redis rate limiter error",
                extra={"identity": mask_identity(identity_key), "error": str(e)},
            )
            return True

        if count > self._max_requests:
            logger.warning(
                "Rate limit exceeded (Redis)",
                extra={
                    "identity": mask_identity(identity_key),
                    "count": count,
                    "max_requests": self._max_requests,
                    "window_seconds": self._window,
                },
            )
            return False
        return True

    def is_limited(self, identity_key: str, now: float | None = None) -> bool:
        try:
            raw = self._redis.get(self._key(identity_key))
        except Exception as e:
            logger.error(
                "Redis rate limiter read error",
                extra={"identity": mask_identity(identity_key), "error": str(e)},
            )
            return False
        if raw is None:
            return False
        return int(raw) >= self._max_requests
