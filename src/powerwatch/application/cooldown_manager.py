"""Cooldown por (usuário, ação) com verificação e registro separados.

`check_cooldown` é somente leitura; `record_action` deve ser chamado apenas
depois que a ação protegida foi executada com sucesso.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import TYPE_CHECKING

from powerwatch.application.guard_context import CooldownEntry, GuardContext
from powerwatch.domain.results import CooldownResult
from powerwatch.observability.logging import get_logger, mask_user_id

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


class ActionCooldownManager:
    """Cooldown mais longo que o rate limit, configurável por nome de ação."""

    def __init__(
        self,
        context: GuardContext,
        default_cooldown_seconds: float = 30.0,
        cooldowns: Mapping[str, float] | None = None,
    ) -> None:
        if default_cooldown_seconds <= 0:
            raise ValueError("default_cooldown_seconds deve ser > 0")
        self._context = context
        self._default = default_cooldown_seconds
        self._cooldowns = dict(cooldowns or {})

    @classmethod
    def from_settings(
        cls, context: GuardContext, settings: Settings
    ) -> ActionCooldownManager:
        return cls(
            context,
            default_cooldown_seconds=settings.default_action_cooldown_seconds,
            cooldowns=settings.action_cooldowns,
        )

    def cooldown_for(self, action: str) -> float:
        return self._cooldowns.get(action, self._default)

    def check_cooldown(self, user_id: str, action: str) -> CooldownResult:
        """Verifica sem alterar estado."""
        entry = self._context.cooldowns.get((user_id, action))
        if entry is None:
            return CooldownResult(allowed=True)

        elapsed = self._context.now() - entry.last_action_at
        duration = entry.duration_seconds
        if elapsed >= duration:
            return CooldownResult(allowed=True)

        remaining = max(1, math.ceil(duration - elapsed))
        logger.debug(
            "Action on cooldown",
            extra={
                "user_id": mask_user_id(user_id),
                "action": action,
                "remaining_seconds": remaining,
            },
        )
        return CooldownResult(allowed=False, remaining_seconds=remaining)

    def record_action(self, user_id: str, action: str) -> None:
        """Registra que a ação foi executada agora."""
        self._context.cooldowns[(user_id, action)] = CooldownEntry(
            last_action_at=self._context.now(),
            duration_seconds=self.cooldown_for(action),
        )

    def reset(self, user_id: str, action: str | None = None) -> int:
        """Remove cooldowns do usuário (uma ação ou todas); retorna quantos."""
        if action is not None:
            return 1 if self._context.cooldowns.pop((user_id, action), None) is not None else 0

        keys = [key for key in self._context.cooldowns if key[0] == user_id]
        for key in keys:
            del self._context.cooldowns[key]
        return len(keys)
