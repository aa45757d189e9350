"""Implementação de EndpointStateStore em memória (apenas dev/testes)."""

from __future__ import annotations

import logging

from powerwatch.domain.endpoint import MonitoredEndpoint
from powerwatch.domain.protocols.endpoint_store import EndpointStateStore
from powerwatch.observability.logging import get_logger, mask_user_id

logger: logging.Logger = get_logger(__name__)


class InMemoryEndpointStateStore(EndpointStateStore):
    """Armazenamento em memória (não usar em produção).

    Guarda o JSON serializado, não a instância: o que é carregado é uma
    cópia independente, como aconteceria após um restart.
    """

    def __init__(self) -> None:
        self._payloads: dict[str, str] = {}

    async def load_endpoint_state(self, user_id: str) -> MonitoredEndpoint | None:
        payload = self._payloads.get(user_id)
        if payload is None:
            logger.debug("Endpoint state not found (in-memory)", extra={"user_id": mask_user_id(user_id)})
            return None
        return MonitoredEndpoint.model_validate_json(payload)

    async def save_endpoint_state(self, user_id: str, entry: MonitoredEndpoint) -> None:
        self._payloads[user_id] = entry.model_dump_json()
        logger.debug("Endpoint state saved (in-memory)", extra={"user_id": mask_user_id(user_id)})

    async def delete_endpoint_state(self, user_id: str) -> bool:
        return self._payloads.pop(user_id, None) is not None

    async def list_user_ids(self) -> list[str]:
        return list(self._payloads)
