"""Enums de domínio para estados de endpoint, probes e ciclos de monitoramento."""

from __future__ import annotations

from enum import StrEnum


class EndpointState(StrEnum):
    """Último estado observado de alcançabilidade do endpoint."""

    UNKNOWN = "unknown"
    UP = "up"
    DOWN = "down"


class ProbeResult(StrEnum):
    """Resultado bruto de um probe de alcançabilidade."""

    UP = "up"
    DOWN = "down"
    TIMEOUT = "timeout"

    @property
    def is_failure(self) -> bool:
        """Timeout é falha transitória, nunca um estado."""
        return self is ProbeResult.TIMEOUT

    def as_state(self) -> EndpointState:
        """Converte resultado válido em EndpointState."""
        if self is ProbeResult.TIMEOUT:
            raise ValueError("ProbeResult.TIMEOUT não representa um estado")
        return EndpointState(self.value)


class EndpointPhase(StrEnum):
    """Estado confirmado (estável) da máquina de estados do tracker."""

    UNKNOWN = "UNKNOWN"
    CONFIRMED_UP = "CONFIRMED_UP"
    CONFIRMED_DOWN = "CONFIRMED_DOWN"

    @classmethod
    def confirmed(cls, state: EndpointState) -> EndpointPhase:
        """Retorna a fase confirmada correspondente ao estado observado."""
        if state is EndpointState.UP:
            return cls.CONFIRMED_UP
        if state is EndpointState.DOWN:
            return cls.CONFIRMED_DOWN
        return cls.UNKNOWN


class CycleOutcome(StrEnum):
    """Resultado de um ciclo do EndpointStateTracker (para logs e testes)."""

    NOT_MONITORED = "NOT_MONITORED"
    SKIPPED_BUSY = "SKIPPED_BUSY"
    PROBE_FAILED = "PROBE_FAILED"
    UNCHANGED = "UNCHANGED"
    TRANSITION = "TRANSITION"
    PENDING = "PENDING"
    BASELINE = "BASELINE"
    STABILIZED = "STABILIZED"
    SUPPRESSED_COOLDOWN = "SUPPRESSED_COOLDOWN"
    NOTIFIED = "NOTIFIED"
    NOTIFY_FAILED = "NOTIFY_FAILED"


class AddressRejection(StrEnum):
    """Códigos de rejeição do AddressValidator."""

    LOCALHOST_FORBIDDEN = "localhost_forbidden"
    PRIVATE_IP_FORBIDDEN = "private_ip_forbidden"
    INVALID_FORMAT = "invalid_format"


class GuardKind(StrEnum):
    """Guarda que negou uma ação no ActionGate."""

    RATE_LIMIT = "rate_limit"
    COOLDOWN = "cooldown"
    CONFLICT = "conflict"
