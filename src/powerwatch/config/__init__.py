"""Configurações centralizadas do powerwatch.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única
- Constantes de política (cooldown de notificação, estabilização mínima)

Uso típico:
    from powerwatch.config import get_settings, NOTIFICATION_COOLDOWN_SECONDS
"""

from powerwatch.config.settings import (
    MIN_STABILIZATION_SECONDS,
    NOTIFICATION_COOLDOWN_SECONDS,
    TELEGRAM_API_BASE_URL,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "NOTIFICATION_COOLDOWN_SECONDS",
    "MIN_STABILIZATION_SECONDS",
    "TELEGRAM_API_BASE_URL",
]
