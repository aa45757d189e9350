"""Rate limit curto e uniforme por usuário (anti double-tap).

Um único relógio por usuário, compartilhado por todos os tipos de ação.
Verificação e registro acontecem na mesma chamada.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from powerwatch.application.guard_context import GuardContext
from powerwatch.domain.results import RateLimitResult
from powerwatch.observability.logging import get_logger, mask_user_id

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

RATE_LIMIT_REASON = "cooldown"


class ActionRateLimiter:
    """Bloqueia ações repetidas de um usuário dentro de uma janela curta."""

    def __init__(self, context: GuardContext, window_seconds: float = 1.0) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds deve ser > 0")
        self._context = context
        self._window = window_seconds

    @classmethod
    def from_settings(cls, context: GuardContext, settings: Settings) -> ActionRateLimiter:
        return cls(context, window_seconds=settings.rate_limit_window_seconds)

    @property
    def window_seconds(self) -> float:
        return self._window

    def check_action(self, user_id: str, action_type: str) -> RateLimitResult:
        """Verifica e registra a ação; a primeira ação sempre é permitida."""
        now = self._context.now()
        last = self._context.rate_limits.get(user_id)

        if last is not None and now - last < self._window:
            logger.debug(
                "Action rate limited",
                extra={
                    "user_id": mask_user_id(user_id),
                    "action_type": action_type,
                    "window_seconds": self._window,
                },
            )
            return RateLimitResult(allowed=False, reason=RATE_LIMIT_REASON)

        self._context.rate_limits[user_id] = now
        return RateLimitResult(allowed=True)

    def reset(self, user_id: str) -> bool:
        """Remove o registro do usuário; True se existia."""
        return self._context.rate_limits.pop(user_id, None) is not None
