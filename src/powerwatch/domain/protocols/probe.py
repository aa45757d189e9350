"""Protocolo do probe de alcançabilidade."""

from __future__ import annotations

from abc import ABC, abstractmethod

from powerwatch.domain.enums import ProbeResult


class ReachabilityProbe(ABC):
    """Contrato para verificar se um endereço responde."""

    @abstractmethod
    async def probe(self, address: str) -> ProbeResult:
        """Retorna UP, DOWN ou TIMEOUT (falha do próprio probe)."""
        ...
