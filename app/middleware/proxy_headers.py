"""
Forwarded header handling.

X-Forwarded-Host / X-Forwarded-For are only honoured when the immediate peer
is one of the configured trusted proxy hops (TRUSTED_PROXY_IPS); otherwise
the Host header and the socket peer are used as-is.
"""

import ipaddress
import logging
from typing import Sequence

from starlette.requests import Request

logger = logging.getLogger(__name__)

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def parse_networks(raw: str) -> list[Network]:
    """Parse comma-separated IP/CIDR string into network objects."""
    networks: list[Network] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("Invalid IP/CIDR in TRUSTED_PROXY_IPS: %s", entry)
    return networks


def is_ip_in(client_ip: str, networks: Sequence[Network]) -> bool:
    try:
        addr = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(addr in net for net in networks)


def _peer_is_trusted(request: Request, trusted_proxies: Sequence[Network]) -> bool:
    direct_ip = request.client.host if request.client else ""
    return bool(direct_ip) and is_ip_in(direct_ip, trusted_proxies)


def get_effective_host(request: Request, trusted_proxies: Sequence[Network]) -> str:
    """Host the visitor actually addressed (first X-Forwarded-Host value from a trusted hop)."""
    if _peer_is_trusted(request, trusted_proxies):
        forwarded = request.headers.get("x-forwarded-host")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.headers.get("host", "")


def get_client_ip(request: Request, trusted_proxies: Sequence[Network]) -> str:
    direct_ip = request.client.host if request.client else ""

    if _peer_is_trusted(request, trusted_proxies):
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        x_real = request.headers.get("X-Real-IP")
        if x_real:
            return x_real.strip()

    return direct_ip or "0.0.0.0"
