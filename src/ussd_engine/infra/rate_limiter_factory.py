"""Factory para RateLimiter.

Responsabilidades:
- Criar instâncias de RateLimiter baseado em config
- Validar clientes obrigatórios (Redis)
- Injetar limites via config
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ussd_engine.domain.rate_limiter import (
    InMemoryRateLimiter,
    RateLimiter,
    RedisRateLimiter,
)
from ussd_engine.observability.logging import get_logger

if TYPE_CHECKING:
    from ussd_engine.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_rate_limiter(
    backend: str,
    max_requests: int = 10,
    window_seconds: int = 60,
    grace_seconds: int = 60,
    redis_client: Any | None = None,
    clock: Callable[[], float] | None = None,
) -> RateLimiter:
    """Factory para RateLimiter.

    Args:
        backend: "redis" ou "memory"
        max_requests: Requisições aceitas por janela (padrão 10)
        window_seconds: Duração da janela fixa em segundos (padrão 60)
        grace_seconds: Retenção extra de janelas antes do sweep (memory)
        redis_client: Cliente Redis (obrigatório se backend="redis")
        clock: Relógio monotônico injetável (memory; útil em testes)

    Returns:
        RateLimiter configurado

    Raises:
        ValueError: Se backend inválido ou cliente Redis não fornecido
    """
    if backend == "memory":
        logger.warning(
            "Using in-memory rate limiter (single instance only)",
            extra={"max_requests": max_requests, "window_seconds": window_seconds},
        )
        return InMemoryRateLimiter(
            max_requests=max_requests,
            window_seconds=window_seconds,
            grace_seconds=grace_seconds,
            clock=clock,
        )

    if backend == "redis":
        if not redis_client:
            msg = "redis_client required for redis backend"
            raise ValueError(msg)

        logger.info(
            "Using Redis rate limiter (distributed)",
            extra={"max_requests": max_requests, "window_seconds": window_seconds},
        )
        return RedisRateLimiter(
            redis_client=redis_client,
            max_requests=max_requests,
            window_seconds=window_seconds,
        )

    msg = f"Unknown rate limiter backend: {backend}"
    raise ValueError(msg)


def create_rate_limiter_from_settings(
    settings: Settings,
    redis_client: Any | None = None,
    clock: Callable[[], float] | None = None,
) -> RateLimiter:
    """Cria RateLimiter a partir de Settings.

    - Desenvolvimento: memory
    - Staging/produção: redis (janelas compartilhadas entre instâncias)

    Raises:
        ValueError: Se configuração inválida em staging/produção
    """
    backend = settings.rate_limiter_backend.lower()

    if (settings.is_production or settings.is_staging) and backend == "memory":
        msg = (
            "RATE_LIMITER_BACKEND=memory is unsuitable for production. "
            "Use 'redis' so that every instance shares the same windows."
        )
        raise ValueError(msg)

    if backend == "redis" and not redis_client:
        try:
            import redis

            redis_url = settings.redis_url or "redis://localhost:6379"
            redis_client = redis.from_url(redis_url)
            logger.info("Auto-created Redis client for rate limiter")
        except Exception as e:
            msg = f"Failed to create Redis client for rate limiter: {e}"
            raise ValueError(msg) from e

    return create_rate_limiter(
        backend=backend,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        grace_seconds=settings.rate_limit_grace_seconds,
        redis_client=redis_client,
        clock=clock,
    )
