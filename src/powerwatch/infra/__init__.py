"""Camada de infraestrutura: adapters para serviços externos.

- Store: InMemoryEndpointStateStore, RedisEndpointStateStore, create_endpoint_store
- Probe: HttpReachabilityProbe
- Notifier: TelegramNotifier
- HTTP: HttpClient
- Circuit breaker do notifier: NotifierCircuitBreaker

Infraestrutura não decide regra de negócio; domínio não conhece infraestrutura.
"""

from powerwatch.infra.circuit_breaker import BreakerState, NotifierCircuitBreaker
from powerwatch.infra.endpoint_store_factory import (
    create_endpoint_store,
    create_endpoint_store_from_settings,
)
from powerwatch.infra.endpoint_store_memory import InMemoryEndpointStateStore
from powerwatch.infra.endpoint_store_redis import RedisEndpointStateStore
from powerwatch.infra.http import HttpClient, HttpClientConfig, HttpError, create_http_client
from powerwatch.infra.probe_http import HttpReachabilityProbe, build_probe_url
from powerwatch.infra.telegram_notifier import TelegramNotifier

__all__ = [
    "BreakerState",
    "HttpClient",
    "HttpClientConfig",
    "HttpError",
    "HttpReachabilityProbe",
    "InMemoryEndpointStateStore",
    "NotifierCircuitBreaker",
    "RedisEndpointStateStore",
    "TelegramNotifier",
    "build_probe_url",
    "create_endpoint_store",
    "create_endpoint_store_from_settings",
    "create_http_client",
]
