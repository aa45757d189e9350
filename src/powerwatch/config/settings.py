"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars.
Nunca hardcode tokens ou valores sensíveis.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from powerwatch.observability.logging import get_logger

# -----------------------------------------------------------------------------
# Constantes de política de notificação
# -----------------------------------------------------------------------------
NOTIFICATION_COOLDOWN_SECONDS: int = 60
MIN_STABILIZATION_SECONDS: int = 30
TELEGRAM_API_BASE_URL: str = "https://api.telegram.org"

logger: logging.Logger = get_logger(__name__)


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Aplicação
    service_name: str = "powerwatch"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    timezone: str = "Europe/Kyiv"

    # Monitoramento de endpoints
    notification_cooldown_seconds: int = NOTIFICATION_COOLDOWN_SECONDS
    min_stabilization_seconds: int = MIN_STABILIZATION_SECONDS
    default_debounce_minutes: int = 5  # 0 = apenas estabilização mínima
    poll_interval_seconds: int = 0  # 0 = intervalo dinâmico pelo número de usuários
    max_concurrent_probes: int = 10

    # Timeouts (nenhuma operação bloqueia indefinidamente)
    probe_timeout_seconds: float = 5.0
    store_timeout_seconds: float = 5.0
    notify_timeout_seconds: float = 10.0
    flush_timeout_seconds: float = 10.0

    # Guardas anti-abuso (estado em memória, não persistido)
    rate_limit_window_seconds: float = 1.0
    default_action_cooldown_seconds: float = 30.0
    action_cooldowns: dict[str, float] = Field(default_factory=dict)
    guard_retention_seconds: float = 3600.0  # 1h ociosa -> removida no sweep
    guard_sweep_interval_seconds: float = 600.0

    # Persistência do estado dos endpoints
    endpoint_store_backend: str = "memory"  # memory | redis
    redis_url: str | None = None
    endpoint_store_key_prefix: str = "endpoint:"

    # Telegram (notifier)
    telegram_bot_token: str | None = None
    telegram_api_base_url: str = TELEGRAM_API_BASE_URL
    telegram_request_timeout_seconds: float = 10.0
    telegram_max_retries: int = 2
    telegram_circuit_breaker_enabled: bool = True
    telegram_circuit_breaker_failure_threshold: int = 5
    telegram_circuit_breaker_recovery_seconds: float = 60.0

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

    def validate_endpoint_store_config(self) -> list[str]:
        """Valida backend de persistência dos endpoints.

        Em staging/prod, memory é proibido: o estado precisa sobreviver a
        restarts para manter a continuidade de cooldown e estabilização.
        """
        errors: list[str] = []
        backend = self.endpoint_store_backend.lower()

        valid_backends = {"memory", "redis"}
        if backend not in valid_backends:
            errors.append(
                f"ENDPOINT_STORE_BACKEND '{backend}' inválido. Valores válidos: {valid_backends}"
            )

        if backend == "memory" and (self.is_production or self.is_staging):
            errors.append(
                "ENDPOINT_STORE_BACKEND=memory é proibido em staging/production. "
                "Configure 'redis' para preservar estado entre restarts."
            )
        if backend == "redis" and not self.redis_url:
            errors.append("ENDPOINT_STORE_BACKEND=redis requer REDIS_URL configurado")
        return errors

    def validate_notifier_config(self) -> list[str]:
        """Valida se o notifier tem o mínimo para enviar mensagens."""
        errors: list[str] = []
        if not self.telegram_bot_token:
            errors.append("TELEGRAM_BOT_TOKEN não configurado")
        return errors

    def validate_timing_config(self) -> list[str]:
        """Valida janelas e timeouts (todos devem ser positivos)."""
        errors: list[str] = []
        if self.notification_cooldown_seconds <= 0:
            errors.append("NOTIFICATION_COOLDOWN_SECONDS deve ser > 0")
        if self.min_stabilization_seconds <= 0:
            errors.append("MIN_STABILIZATION_SECONDS deve ser > 0")
        if self.default_debounce_minutes < 0:
            errors.append("DEFAULT_DEBOUNCE_MINUTES não pode ser negativo")
        if self.poll_interval_seconds < 0:
            errors.append("POLL_INTERVAL_SECONDS não pode ser negativo")
        for name in (
            "probe_timeout_seconds",
            "store_timeout_seconds",
            "notify_timeout_seconds",
            "flush_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} deve ser > 0")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"TIMEZONE '{self.timezone}' inválido")
        return errors

    def model_post_init(self, __context: Any) -> None:
        """Falha cedo em staging/production se a configuração for inválida."""
        if not (self.is_production or self.is_staging):
            return

        errors = [
            *self.validate_endpoint_store_config(),
            *self.validate_notifier_config(),
            *self.validate_timing_config(),
        ]
        if errors:
            logger.error(
                "Validação de configuração falhou",
                extra={"errors": errors, "environment": self.environment},
            )
            raise RuntimeError(f"Configuração inválida: {'; '.join(errors)}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings.

    A cache garante que mesmo múltiplas injeções não criam novos objetos.
    """
    return Settings()
