"""Protocolo do canal de entrega de notificações."""

from __future__ import annotations

from abc import ABC, abstractmethod

from powerwatch.domain.results import DispatchResult


class Notifier(ABC):
    """Contrato mínimo para envio de mensagens ao usuário."""

    @abstractmethod
    async def send(self, user_id: str, message: str) -> DispatchResult:
        """Envia mensagem; nunca levanta por falha de entrega.

        Returns:
            DispatchResult com ok=True apenas se o envio foi confirmado
        """
        ...
