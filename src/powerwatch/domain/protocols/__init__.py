"""Re-exports dos Protocolos de domínio para uso por Application."""

from __future__ import annotations

from powerwatch.domain.protocols.endpoint_store import EndpointStateStore, EndpointStoreError
from powerwatch.domain.protocols.notifier import Notifier
from powerwatch.domain.protocols.probe import ReachabilityProbe

__all__ = [
    "EndpointStateStore",
    "EndpointStoreError",
    "Notifier",
    "ReachabilityProbe",
]
