"""Cadeia de guardas para ações interativas do usuário.

Ordem fixa: rate limit -> cooldown da ação -> conflito de fluxo.
A primeira negação encerra a avaliação.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from powerwatch.application.conflict_guard import StateConflictGuard
from powerwatch.application.cooldown_manager import ActionCooldownManager
from powerwatch.application.guard_context import GuardContext
from powerwatch.application.rate_limiter import ActionRateLimiter
from powerwatch.domain.enums import GuardKind
from powerwatch.domain.results import GateDecision
from powerwatch.observability.logging import get_logger, mask_user_id

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


class ActionGate:
    """Consulta os três guardas antes de executar uma ação protegida.

    Uso típico:
        decision = gate.evaluate(user_id, "wizard_start", flow="wizard")
        if decision.allowed:
            await run_wizard(...)
            gate.complete(user_id, "wizard_start")
    """

    def __init__(
        self,
        rate_limiter: ActionRateLimiter,
        cooldowns: ActionCooldownManager,
        conflicts: StateConflictGuard,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._cooldowns = cooldowns
        self._conflicts = conflicts

    @classmethod
    def from_settings(cls, context: GuardContext, settings: Settings) -> ActionGate:
        return cls(
            rate_limiter=ActionRateLimiter.from_settings(context, settings),
            cooldowns=ActionCooldownManager.from_settings(context, settings),
            conflicts=StateConflictGuard(context),
        )

    @property
    def conflicts(self) -> StateConflictGuard:
        return self._conflicts

    def evaluate(self, user_id: str, action: str, flow: str | None = None) -> GateDecision:
        rate = self._rate_limiter.check_action(user_id, action)
        if not rate.allowed:
            return self._deny(user_id, action, GuardKind.RATE_LIMIT, reason=rate.reason)

        cooldown = self._cooldowns.check_cooldown(user_id, action)
        if not cooldown.allowed:
            return self._deny(
                user_id,
                action,
                GuardKind.COOLDOWN,
                reason="cooldown",
                remaining_seconds=cooldown.remaining_seconds,
            )

        if flow is not None:
            conflict = self._conflicts.check_conflict(user_id, flow)
            if conflict.has_conflict:
                return self._deny(
                    user_id,
                    action,
                    GuardKind.CONFLICT,
                    reason="flow_conflict",
                    current_flow=conflict.current_flow,
                )

        return GateDecision(allowed=True)

    def complete(self, user_id: str, action: str) -> None:
        """Confirma a ação executada (inicia o cooldown)."""
        self._cooldowns.record_action(user_id, action)

    def _deny(
        self,
        user_id: str,
        action: str,
        denied_by: GuardKind,
        reason: str | None = None,
        remaining_seconds: int | None = None,
        current_flow: str | None = None,
    ) -> GateDecision:
        logger.info(
            "Action denied",
            extra={
                "user_id": mask_user_id(user_id),
                "action": action,
                "denied_by": denied_by.value,
            },
        )
        return GateDecision(
            allowed=False,
            denied_by=denied_by,
            reason=reason,
            remaining_seconds=remaining_seconds,
            current_flow=current_flow,
        )
