"""Protocolo de persistência do estado dos endpoints monitorados."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from powerwatch.domain.endpoint import MonitoredEndpoint


class EndpointStoreError(Exception):
    """Erro ao persistir ou recuperar estado de endpoint."""

    pass


class EndpointStateStore(ABC):
    """Contrato assíncrono para armazenamento de MonitoredEndpoint."""

    @abstractmethod
    async def load_endpoint_state(self, user_id: str) -> MonitoredEndpoint | None:
        """Carrega o estado persistido do usuário.

        Returns:
            MonitoredEndpoint ou None se não houver registro
        """
        ...

    @abstractmethod
    async def save_endpoint_state(self, user_id: str, entry: MonitoredEndpoint) -> None:
        """Persiste o estado completo (upsert).

        Raises:
            EndpointStoreError: Se a persistência falhar
        """
        ...

    @abstractmethod
    async def delete_endpoint_state(self, user_id: str) -> bool:
        """Remove o estado persistido; True se existia."""
        ...

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        """Lista os usuários com estado persistido (usado no restore do startup)."""
        ...
