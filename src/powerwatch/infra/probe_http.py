"""Probe de alcançabilidade via HTTP HEAD."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any

import httpx

from powerwatch.domain.address_validation import split_host_port
from powerwatch.domain.enums import ProbeResult
from powerwatch.domain.protocols.probe import ReachabilityProbe
from powerwatch.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

DEFAULT_PROBE_PORT: int = 80


def build_probe_url(address: str) -> str:
    """Monta `http://host:port` (porta 80 se omitida; IPv6 entre colchetes)."""
    host, port = split_host_port(address)
    try:
        if ipaddress.ip_address(host).version == 6:
            host = f"[{host}]"
    except ValueError:
        pass
    return f"http://{host}:{port or DEFAULT_PROBE_PORT}"


class HttpReachabilityProbe(ReachabilityProbe):
    """Considera o endpoint UP se responder qualquer status HTTP.

    - Qualquer resposta (inclusive 4xx/5xx): UP
    - Erro de transporte (recusado, inalcançável, timeout de conexão): DOWN
    - Erro inesperado do próprio probe: TIMEOUT (falha transitória)
    """

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=False,
            )
            self._owns_client = True
        return self._client

    async def probe(self, address: str) -> ProbeResult:
        try:
            url = build_probe_url(address)
        except ValueError:
            logger.warning("Probe address malformed")
            return ProbeResult.TIMEOUT

        try:
            response = await self._get_client().head(url)
        except httpx.TransportError as exc:
            logger.debug("Probe endpoint unreachable", extra={"error_type": type(exc).__name__})
            return ProbeResult.DOWN
        except httpx.HTTPError as exc:
            logger.warning("Probe HTTP error", extra={"error_type": type(exc).__name__})
            return ProbeResult.TIMEOUT

        logger.debug("Probe endpoint reachable", extra={"status_code": response.status_code})
        return ProbeResult.UP

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpReachabilityProbe:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
