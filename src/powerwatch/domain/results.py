"""Tipos de resultado explícitos dos guardas e do envio de notificações.

Nenhuma operação de guarda retorna None para significar "falhou": cada uma
retorna um resultado tipado que o chamador inspeciona.
"""

from __future__ import annotations

from dataclasses import dataclass

from powerwatch.domain.enums import AddressRejection, GuardKind

CIRCUIT_OPEN = "circuit_open"


@dataclass(frozen=True, slots=True)
class AddressValidationResult:
    """Resultado da validação de endereço submetido pelo usuário."""

    valid: bool
    reason: AddressRejection | None = None

    @classmethod
    def accepted(cls) -> AddressValidationResult:
        return cls(valid=True)

    @classmethod
    def rejected(cls, reason: AddressRejection) -> AddressValidationResult:
        return cls(valid=False, reason=reason)


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Resultado do ActionRateLimiter (check-and-record atômico)."""

    allowed: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class CooldownResult:
    """Resultado read-only do ActionCooldownManager."""

    allowed: bool
    remaining_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class ConflictResult:
    """Resultado do StateConflictGuard."""

    has_conflict: bool
    current_flow: str | None = None


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Decisão agregada do ActionGate (primeira negação vence)."""

    allowed: bool
    denied_by: GuardKind | None = None
    reason: str | None = None
    remaining_seconds: int | None = None
    current_flow: str | None = None


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Resultado de um envio pelo Notifier.

    Distingue "tentou e falhou" de sucesso: apenas `ok=True` permite avançar
    o relógio de cooldown (last_notification_at).
    """

    ok: bool
    error: str | None = None
    message_id: str | None = None
    retry_after_seconds: int | None = None

    @classmethod
    def delivered(cls, message_id: str | None = None) -> DispatchResult:
        return cls(ok=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str) -> DispatchResult:
        return cls(ok=False, error=error)

    @classmethod
    def circuit_open(cls, retry_after_seconds: int) -> DispatchResult:
        """Envio não tentado: o circuito do canal de entrega está aberto."""
        return cls(ok=False, error=CIRCUIT_OPEN, retry_after_seconds=retry_after_seconds)

    @property
    def is_circuit_open(self) -> bool:
        return not self.ok and self.error == CIRCUIT_OPEN
