"""Implementação de EndpointStateStore usando Redis (produção).

Uma chave por usuário (`<prefix><user_id>`) com o MonitoredEndpoint em JSON.
Sem TTL: o estado precisa sobreviver a restarts indefinidamente.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from powerwatch.domain.endpoint import MonitoredEndpoint
from powerwatch.domain.protocols.endpoint_store import EndpointStateStore, EndpointStoreError
from powerwatch.observability.logging import get_logger, mask_user_id

logger: logging.Logger = get_logger(__name__)


class RedisEndpointStateStore(EndpointStateStore):
    """Armazenamento em Redis via cliente redis.asyncio."""

    def __init__(self, redis_client: Any, key_prefix: str = "endpoint:") -> None:
        self._redis = redis_client
        self._prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}{user_id}"

    async def load_endpoint_state(self, user_id: str) -> MonitoredEndpoint | None:
        try:
            payload = await self._redis.get(self._key(user_id))
        except Exception as e:
            logger.error(
                "Failed to load endpoint state from Redis",
                extra={"user_id": mask_user_id(user_id), "error_type": type(e).__name__},
            )
            raise EndpointStoreError(f"Redis load failed: {type(e).__name__}") from e

        if not payload:
            logger.debug("Endpoint state not found (Redis)", extra={"user_id": mask_user_id(user_id)})
            return None

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")

        try:
            return MonitoredEndpoint.model_validate_json(payload)
        except ValidationError as e:
            logger.error(
                "Corrupted endpoint state in Redis",
                extra={"user_id": mask_user_id(user_id), "errors": e.error_count()},
            )
            raise EndpointStoreError("Invalid endpoint state payload") from e

    async def save_endpoint_state(self, user_id: str, entry: MonitoredEndpoint) -> None:
        try:
            await self._redis.set(self._key(user_id), entry.model_dump_json())
        except Exception as e:
            logger.error(
                "Failed to save endpoint state to Redis",
                extra={"user_id": mask_user_id(user_id), "error_type": type(e).__name__},
            )
            raise EndpointStoreError(f"Redis save failed: {type(e).__name__}") from e

        logger.debug("Endpoint state saved (Redis)", extra={"user_id": mask_user_id(user_id)})

    async def delete_endpoint_state(self, user_id: str) -> bool:
        try:
            deleted = await self._redis.delete(self._key(user_id))
        except Exception as e:
            logger.error(
                "Failed to delete endpoint state from Redis",
                extra={"user_id": mask_user_id(user_id), "error_type": type(e).__name__},
            )
            raise EndpointStoreError(f"Redis delete failed: {type(e).__name__}") from e
        return bool(deleted)

    async def list_user_ids(self) -> list[str]:
        user_ids: list[str] = []
        try:
            async for key in self._redis.scan_iter(match=f"{self._prefix}*"):
                if isinstance(key, bytes):
                    key = key.decode("utf-8")
                user_ids.append(key[len(self._prefix) :])
        except Exception as e:
            logger.error("Failed to list endpoint keys", extra={"error_type": type(e).__name__})
            raise EndpointStoreError(f"Redis scan failed: {type(e).__name__}") from e
        return user_ids
