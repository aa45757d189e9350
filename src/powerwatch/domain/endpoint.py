"""Models do endpoint monitorado — MonitoredEndpoint.

MonitoredEndpoint é a unidade de estado por usuário do tracker:
- Um usuário = um endereço monitorado
- Estado confirmado explícito (phase) + flag pending
- Serializável para Redis/memória; recarregado no startup para manter
  a continuidade de cooldown e estabilização entre restarts
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field, model_validator

from powerwatch.domain.enums import EndpointPhase, EndpointState


@dataclass(frozen=True, slots=True)
class TrackerStatus:
    """Estado tagueado da máquina de estados: fase confirmada + pending."""

    phase: EndpointPhase
    pending: bool

    @property
    def label(self) -> str:
        return f"{self.phase.value}+PENDING" if self.pending else self.phase.value


class MonitoredEndpoint(BaseModel):
    """Estado completo de monitoramento de um usuário.

    Responsabilidades:
    - Registrar o último estado observado e quando ele mudou
    - Manter a fase confirmada e a flag pending explicitamente
    - Guardar o relógio de cooldown (last_notification_at, nunca decresce)
    - Guardar a notificação ainda devida (adiada por cooldown ou falha)
    """

    user_id: str
    address: str
    debounce_minutes: int = Field(default=0, ge=0)

    last_known_state: EndpointState = EndpointState.UNKNOWN
    last_transition_at: datetime | None = None
    last_stable_at: datetime | None = None
    last_notification_at: datetime | None = None

    phase: EndpointPhase = EndpointPhase.UNKNOWN
    pending: bool = False
    # Estado que o usuário conhece (a linha de base conta como conhecida)
    reported_state: EndpointState | None = None
    notification_due: EndpointState | None = None
    confirmed_since: datetime | None = None
    previous_confirmed_since: datetime | None = None

    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @model_validator(mode="after")
    def _check_pending_consistency(self) -> MonitoredEndpoint:
        if self.pending and self.last_transition_at is None:
            raise ValueError("pending=True requer last_transition_at")
        if self.pending and self.last_known_state is EndpointState.UNKNOWN:
            raise ValueError("pending=True requer last_known_state conhecido")
        return self

    @property
    def status(self) -> TrackerStatus:
        return TrackerStatus(phase=self.phase, pending=self.pending)

    def stabilization_window(self, min_stabilization_seconds: float) -> timedelta:
        """Janela efetiva de estabilização.

        debounce_minutes=0 nunca produz notificação instantânea: usa a
        estabilização mínima configurada.
        """
        if self.debounce_minutes > 0:
            return timedelta(minutes=self.debounce_minutes)
        return timedelta(seconds=min_stabilization_seconds)

    def stabilization_remaining(
        self, now: datetime, min_stabilization_seconds: float
    ) -> timedelta:
        """Tempo restante até a transição pendente ser considerada estável."""
        if not self.pending or self.last_transition_at is None:
            return timedelta(0)
        elapsed = now - self.last_transition_at
        remaining = self.stabilization_window(min_stabilization_seconds) - elapsed
        return max(remaining, timedelta(0))

    def record_transition(self, state: EndpointState, now: datetime) -> None:
        """Registra resultado diferente do último observado; reinicia a janela."""
        self.last_known_state = state
        self.last_transition_at = now
        self.pending = True
        self.updated_at = now

    def confirm(self, now: datetime) -> EndpointPhase:
        """Marca a transição pendente como estável; retorna a fase anterior."""
        previous = self.phase
        self.phase = EndpointPhase.confirmed(self.last_known_state)
        if self.phase is not previous:
            self.previous_confirmed_since = self.confirmed_since
            self.confirmed_since = self.last_transition_at
        self.last_stable_at = now
        self.pending = False
        self.updated_at = now
        return previous

    def mark_notified(self, state: EndpointState, now: datetime) -> None:
        """Avança o relógio de cooldown após envio confirmado."""
        if self.last_notification_at is not None and now < self.last_notification_at:
            raise ValueError("last_notification_at não pode retroceder")
        self.last_notification_at = now
        self.reported_state = state
        self.notification_due = None
        self.updated_at = now
