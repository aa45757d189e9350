"""Validação de endereços submetidos para monitoramento.

Rejeita endereços não roteáveis antes que entrem no tracker:
- localhost / loopback / endereço não especificado
- faixas privadas, link-local, CGNAT, reservadas e multicast
- formato inválido (nem IP, nem hostname)

Função pura: sem estado, sem resolução DNS.
"""

from __future__ import annotations

import ipaddress
import logging
import re

from powerwatch.domain.enums import AddressRejection
from powerwatch.domain.results import AddressValidationResult
from powerwatch.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_HOSTNAME_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$", re.IGNORECASE)
_PORT_SUFFIX = re.compile(r"^(?P<host>[^:]+):(?P<port>\d{1,5})$")
_BRACKETED_V6 = re.compile(r"^\[(?P<host>[0-9a-f:.]+)\](?::(?P<port>\d{1,5}))?$", re.IGNORECASE)

# Blocos tratados como "localhost" (antes da checagem de faixas privadas)
_LOCALHOST_NAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost"})

# 100.64.0.0/10 (CGNAT) não é is_private em todas as versões do Python
_EXTRA_NON_ROUTABLE = (ipaddress.ip_network("100.64.0.0/10"),)


def split_host_port(address: str) -> tuple[str, int | None]:
    """Separa host e porta opcional (`host:port` ou `[v6]:port`).

    Raises:
        ValueError: Se a porta estiver fora de 1..65535
    """
    candidate = address.strip()

    bracketed = _BRACKETED_V6.match(candidate)
    if bracketed:
        port = bracketed.group("port")
        return bracketed.group("host"), _parse_port(port) if port else None

    with_port = _PORT_SUFFIX.match(candidate)
    if with_port:
        return with_port.group("host"), _parse_port(with_port.group("port"))

    return candidate, None


def _parse_port(raw: str) -> int:
    port = int(raw)
    if not 1 <= port <= 65535:
        raise ValueError(f"porta fora do intervalo: {port}")
    return port


def _is_hostname(host: str) -> bool:
    if len(host) > 253:
        return False
    labels = host.rstrip(".").split(".")
    if labels[-1].isdigit():
        # "999.1.1.1" não é hostname válido nem IP
        return False
    return all(_HOSTNAME_LABEL.match(label) for label in labels)


def _is_loopback(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    if ip.is_loopback or ip.is_unspecified:
        return True
    mapped = getattr(ip, "ipv4_mapped", None)
    return bool(mapped and (mapped.is_loopback or mapped.is_unspecified))


def _is_non_routable(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    mapped = getattr(ip, "ipv4_mapped", None)
    if mapped is not None:
        ip = mapped
    if ip.is_private or ip.is_link_local or ip.is_reserved or ip.is_multicast:
        return True
    return any(ip in network for network in _EXTRA_NON_ROUTABLE if ip.version == network.version)


class AddressValidator:
    """Valida endereços submetidos pelo usuário (IP ou hostname, porta opcional)."""

    @staticmethod
    def validate(address: str) -> AddressValidationResult:
        """Aplica as regras em ordem: localhost -> faixa privada -> válido."""

        if not address or not address.strip():
            return AddressValidationResult.rejected(AddressRejection.INVALID_FORMAT)

        try:
            host, _port = split_host_port(address)
        except ValueError:
            return AddressValidationResult.rejected(AddressRejection.INVALID_FORMAT)

        host = host.strip().lower()
        if host in _LOCALHOST_NAMES or host.endswith(".localhost"):
            return AddressValidationResult.rejected(AddressRejection.LOCALHOST_FORBIDDEN)

        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            if _is_hostname(host):
                return AddressValidationResult.accepted()
            logger.debug("Address rejected: invalid format")
            return AddressValidationResult.rejected(AddressRejection.INVALID_FORMAT)

        if _is_loopback(ip):
            return AddressValidationResult.rejected(AddressRejection.LOCALHOST_FORBIDDEN)

        if _is_non_routable(ip):
            return AddressValidationResult.rejected(AddressRejection.PRIVATE_IP_FORBIDDEN)

        return AddressValidationResult.accepted()


def validate_address(address: str) -> AddressValidationResult:
    """Atalho funcional para AddressValidator.validate."""
    return AddressValidator.validate(address)
