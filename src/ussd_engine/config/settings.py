"""Configurações da aplicação via variáveis de ambiente.

Todos os limites de negócio (PIN, transações, rate limit, sessão) são
carregados do ambiente e convertidos em um snapshot imutável de
``GuardLimits``. Nunca hardcode valores de política nos fluxos.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict

from ussd_engine.config.limits import GuardLimits

# Limite prático de caracteres de uma tela USSD
USSD_MAX_MESSAGE_LENGTH: int = 182


class Settings(BaseSettings):
    """Configurações lidas do ambiente.

    Comentários em PT-BR são obrigatórios por diretriz do projeto.
    """

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "ussd_engine"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    timezone: str = "Africa/Nairobi"  # Fronteira de dia para limites diários
    default_locale: str = "eng"

    # PIN
    pin_max_attempts: int = 3  # Falhas consecutivas antes do bloqueio
    pin_lockout_minutes: int = 30  # 0 = bloqueio até desbloqueio explícito
    pin_length: int = 5

    # Transações
    transaction_daily_limit: Decimal = Decimal("50000")
    transaction_max_daily_count: int = 10
    transaction_minimum_balance: Decimal = Decimal("10")

    # Rate limit (janela fixa por identidade)
    rate_limiter_backend: str = "memory"  # memory | redis
    rate_limit_requests: int = 10  # Requisições permitidas por janela
    rate_limit_window_seconds: int = 60
    rate_limit_grace_seconds: int = 60  # Retenção extra antes do sweep
    redis_url: str | None = None  # Para rate_limiter_backend=redis

    # Sessão
    session_timeout_minutes: int = 30  # Timeout de inatividade
    session_sweep_interval_seconds: int = 60  # Intervalo do sweep periódico

    # Sistema
    service_available: bool = True
    maintenance_mode: bool = False
    slow_guard_threshold_ms: float = 1000.0

    # Porta de consultas externas
    external_query_backend: str = "memory"  # memory | http
    external_query_base_url: str | None = None
    external_query_timeout_seconds: float = 5.0
    external_query_max_retries: int = 1
    external_query_backoff_seconds: float = 0.2
    external_query_circuit_breaker_enabled: bool = True
    external_query_circuit_breaker_fail_max: int = 5
    external_query_circuit_breaker_reset_timeout_seconds: float = 30.0

    def guard_limits(self) -> GuardLimits:
        """Constrói o snapshot imutável de limites a partir do ambiente."""
        return GuardLimits(
            pin_max_attempts=self.pin_max_attempts,
            pin_lockout_seconds=self.pin_lockout_minutes * 60,
            transaction_daily_limit=self.transaction_daily_limit,
            transaction_max_daily_count=self.transaction_max_daily_count,
            transaction_minimum_balance=self.transaction_minimum_balance,
            rate_limit_requests=self.rate_limit_requests,
            rate_limit_window_seconds=self.rate_limit_window_seconds,
            session_timeout_seconds=self.session_timeout_minutes * 60,
            service_available=self.service_available,
            maintenance_mode=self.maintenance_mode,
            timezone=self.timezone,
        )

    def validate_limits(self) -> list[str]:
        """Valida limites de negócio.

        Retorna lista de erros (vazia = OK).
        """
        errors: list[str] = []
        if self.pin_max_attempts < 1:
            errors.append("PIN_MAX_ATTEMPTS deve ser >= 1")
        if self.pin_lockout_minutes < 0:
            errors.append("PIN_LOCKOUT_MINUTES não pode ser negativo")
        if self.transaction_daily_limit <= 0:
            errors.append("TRANSACTION_DAILY_LIMIT deve ser positivo")
        if self.transaction_max_daily_count < 1:
            errors.append("TRANSACTION_MAX_DAILY_COUNT deve ser >= 1")
        if self.transaction_minimum_balance < 0:
            errors.append("TRANSACTION_MINIMUM_BALANCE não pode ser negativo")
        if self.rate_limit_requests < 1 or self.rate_limit_window_seconds < 1:
            errors.append("RATE_LIMIT_REQUESTS e RATE_LIMIT_WINDOW_SECONDS devem ser >= 1")
        if self.session_timeout_minutes < 1:
            errors.append("SESSION_TIMEOUT_MINUTES deve ser >= 1")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"TIMEZONE '{self.timezone}' desconhecido")
        return errors

    def validate_rate_limiter_backend(self) -> list[str]:
        """Valida backend do rate limiter por ambiente.

        Em staging/prod, memory é proibido (várias instâncias não
        compartilhariam as janelas).
        """
        errors: list[str] = []
        backend = self.rate_limiter_backend.lower()
        valid_backends = {"memory", "redis"}

        if backend not in valid_backends:
            errors.append(
                f"RATE_LIMITER_BACKEND '{backend}' inválido. Valores válidos: {valid_backends}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "RATE_LIMITER_BACKEND=memory é proibido em staging/production. "
                "Configure Redis para janelas compartilhadas."
            )

        if backend == "redis" and not self.redis_url:
            errors.append("RATE_LIMITER_BACKEND=redis requer REDIS_URL configurado")

        return errors

    def validate_external_query(self) -> list[str]:
        """Valida configuração da porta de consultas externas."""
        errors: list[str] = []
        backend = self.external_query_backend.lower()
        if backend not in {"memory", "http"}:
            errors.append("EXTERNAL_QUERY_BACKEND inválido: use memory | http")
        if backend == "http" and not self.external_query_base_url:
            errors.append("EXTERNAL_QUERY_BACKEND=http requer EXTERNAL_QUERY_BASE_URL")
        if backend == "memory" and self.is_production:
            errors.append("EXTERNAL_QUERY_BACKEND=memory é proibido em produção")
        if (
            self.is_production
            and self.external_query_base_url
            and self.external_query_base_url.startswith("http://")
        ):
            errors.append("EXTERNAL_QUERY_BASE_URL deve usar https em produção")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações (usado no bootstrap)."""
        return [
            *self.validate_limits(),
            *self.validate_rate_limiter_backend(),
            *self.validate_external_query(),
        ]

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna instância cacheada de Settings."""

    return Settings()
