"""Cliente HTTP com retry, timeout, circuit breaker e logging.

Usado pelo adaptador HTTP da porta de consultas externas:
- Retry com backoff exponencial apenas para falhas transitórias
  (timeout, conexão, 429 e 5xx)
- Circuit breaker opcional para falha rápida com o backend fora do ar
- Logging estruturado sem PII (nunca logar corpo de requisição)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from ussd_engine.infra.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from ussd_engine.observability.logging import get_logger

if TYPE_CHECKING:
    from ussd_engine.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


@dataclass
class HttpClientConfig:
    """Configuração do cliente HTTP (defaults curtos: USSD tem poucos segundos)."""

    base_url: str = ""
    timeout_seconds: float = 5.0
    max_retries: int = 1
    backoff_base_seconds: float = 0.2
    backoff_max_seconds: float = 2.0
    default_headers: dict[str, str] = field(default_factory=dict)
    circuit_breaker_enabled: bool = True
    circuit_breaker_fail_max: int = 5
    circuit_breaker_reset_timeout_seconds: float = 30.0


class HttpError(Exception):
    """Erro de requisição HTTP sem expor informações sensíveis."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable


def _is_retryable_status(status_code: int) -> bool:
    """429 ou 5xx."""
    return status_code == 429 or 500 <= status_code < 600


def _backoff(attempt: int, base_seconds: float, max_seconds: float) -> float:
    return min((2**attempt) * base_seconds, max_seconds)


class HttpClient:
    """Cliente HTTP assíncrono.

    Uso típico:
        async with HttpClient(config) as client:
            response = await client.get("/balances/254700000001")
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._breaker: CircuitBreaker | None = None
        if self._config.circuit_breaker_enabled:
            self._breaker = CircuitBreaker(
                "external_query",
                CircuitBreakerConfig(
                    fail_max=self._config.circuit_breaker_fail_max,
                    reset_timeout_seconds=self._config.circuit_breaker_reset_timeout_seconds,
                ),
            )

    @property
    def breaker(self) -> CircuitBreaker | None:
        return self._breaker

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Executa requisição com circuit breaker e retry.

        Raises:
            HttpError: Circuito aberto, status não-2xx ou falha após retries.
                ``is_retryable`` indica falha de infraestrutura.
        """
        breaker = self._breaker
        if breaker is not None and not await breaker.allow_request():
            logger.warning(
                "Circuit breaker open - failing fast",
                extra={"method": method, "path": path, "breaker_state": str(breaker.state)},
            )
            raise HttpError("Circuit breaker open", is_retryable=True)

        try:
            response = await self._request_with_retry(method, path, **kwargs)
        except HttpError as exc:
            if breaker is not None and exc.is_retryable:
                await breaker.record_failure()
            elif breaker is not None:
                # Resposta 4xx: backend está de pé
                await breaker.record_success()
            raise

        if breaker is not None:
            await breaker.record_success()
        return response

    async def _request_with_retry(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        cfg = self._config
        last_error: HttpError | None = None

        for attempt in range(cfg.max_retries + 1):
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.TimeoutException:
                last_error = HttpError("Timeout", is_retryable=True)
            except httpx.TransportError as exc:
                last_error = HttpError(f"Transport error: {type(exc).__name__}", is_retryable=True)
            else:
                if response.is_success:
                    logger.debug(
                        "HTTP request succeeded",
                        extra={"method": method, "path": path, "status_code": response.status_code},
                    )
                    return response
                retryable = _is_retryable_status(response.status_code)
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=retryable,
                )
                if not retryable:
                    raise last_error

            logger.warning(
                "HTTP request failed",
                extra={
                    "method": method,
                    "path": path,
                    "attempt": attempt + 1,
                    "error": str(last_error),
                },
            )
            if attempt < cfg.max_retries:
                await asyncio.sleep(
                    _backoff(attempt, cfg.backoff_base_seconds, cfg.backoff_max_seconds)
                )

        logger.error(
            "HTTP retries exhausted",
            extra={"method": method, "path": path, "total_attempts": cfg.max_retries + 1},
        )
        raise last_error or HttpError("Request failed after retries", is_retryable=True)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        return await self.request("POST", path, json=json, **kwargs)


def create_http_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """Factory do cliente HTTP da porta de consultas externas."""
    config = HttpClientConfig(
        base_url=settings.external_query_base_url or "",
        timeout_seconds=settings.external_query_timeout_seconds,
        max_retries=settings.external_query_max_retries,
        backoff_base_seconds=settings.external_query_backoff_seconds,
        default_headers={"User-Agent": f"{settings.service_name}/{settings.version}"},
        circuit_breaker_enabled=settings.external_query_circuit_breaker_enabled,
        circuit_breaker_fail_max=settings.external_query_circuit_breaker_fail_max,
        circuit_breaker_reset_timeout_seconds=(
            settings.external_query_circuit_breaker_reset_timeout_seconds
        ),
    )
    logger.info(
        "HTTP client created",
        extra={"timeout_seconds": config.timeout_seconds, "max_retries": config.max_retries},
    )
    return HttpClient(config, transport=transport)
