"""Cooldown entre notificações de mudança de estado.

Política fixa e independente da estabilização: no máximo uma notificação por
usuário a cada `cooldown_seconds`, não importa quantas transições ocorreram.
O relógio é único por usuário (compartilhado entre "subiu" e "caiu").
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from powerwatch.config.settings import NOTIFICATION_COOLDOWN_SECONDS
from powerwatch.domain.endpoint import MonitoredEndpoint


class NotificationCooldownGuard:
    """Decide se uma notificação pode ser enviada agora."""

    def __init__(self, cooldown_seconds: float = NOTIFICATION_COOLDOWN_SECONDS) -> None:
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds deve ser > 0")
        self._cooldown = timedelta(seconds=cooldown_seconds)

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    def may_send(self, entry: MonitoredEndpoint, now: datetime) -> bool:
        """True se nunca notificou ou se o cooldown já expirou."""
        if entry.last_notification_at is None:
            return True
        return now - entry.last_notification_at >= self._cooldown

    def remaining_seconds(self, entry: MonitoredEndpoint, now: datetime) -> int:
        """Segundos (teto) até a próxima notificação permitida; 0 se liberado."""
        if self.may_send(entry, now):
            return 0
        elapsed = now - entry.last_notification_at
        remaining = (self._cooldown - elapsed).total_seconds()
        return max(1, math.ceil(remaining))
