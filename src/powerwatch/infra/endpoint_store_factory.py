"""Factory para EndpointStateStore.

- memory: dev/testes (estado perdido no restart)
- redis: produção (continuidade de cooldown e estabilização)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from powerwatch.domain.protocols.endpoint_store import EndpointStateStore
from powerwatch.infra.endpoint_store_memory import InMemoryEndpointStateStore
from powerwatch.infra.endpoint_store_redis import RedisEndpointStateStore
from powerwatch.observability.logging import get_logger

if TYPE_CHECKING:
    from powerwatch.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_endpoint_store(
    backend: str,
    redis_client: Any | None = None,
    key_prefix: str = "endpoint:",
) -> EndpointStateStore:
    """Cria o store para o backend informado.

    Raises:
        ValueError: Se backend inválido ou cliente Redis não fornecido
    """
    if backend == "memory":
        logger.warning("Using in-memory endpoint store (state lost on restart)")
        return InMemoryEndpointStateStore()

    if backend == "redis":
        if redis_client is None:
            msg = "redis_client required for redis backend"
            raise ValueError(msg)
        logger.info("Using Redis endpoint store", extra={"key_prefix": key_prefix})
        return RedisEndpointStateStore(redis_client, key_prefix=key_prefix)

    msg = f"Unknown endpoint store backend: {backend}"
    raise ValueError(msg)


def create_endpoint_store_from_settings(
    settings: Settings, redis_client: Any | None = None
) -> EndpointStateStore:
    """Cria o store a partir de Settings.

    Raises:
        ValueError: Se memory em staging/produção ou redis sem REDIS_URL
    """
    backend = settings.endpoint_store_backend.lower()

    if (settings.is_production or settings.is_staging) and backend == "memory":
        msg = (
            "ENDPOINT_STORE_BACKEND=memory is unsuitable for production. "
            "Use 'redis' to keep state across restarts."
        )
        raise ValueError(msg)

    if backend == "redis" and redis_client is None:
        if not settings.redis_url:
            msg = "REDIS_URL required for redis endpoint store"
            raise ValueError(msg)

        from redis import asyncio as redis_asyncio

        redis_client = redis_asyncio.from_url(settings.redis_url)
        logger.info("Auto-created Redis client for endpoint store")

    return create_endpoint_store(
        backend=backend,
        redis_client=redis_client,
        key_prefix=settings.endpoint_store_key_prefix,
    )
