"""
Hostname parsing for tenant resolution.

Classifies the Host header of an inbound request into one of the platform's
addressing schemes and extracts the tenant subdomain candidate:

  alice.localhost:3000              -> LOCALHOST,          "alice"
  alice---feature.vercel.app        -> PREVIEW_DEPLOYMENT, "alice"
  alice.pholio.link                 -> PLATFORM_DOMAIN,    "alice"
  www.pholio.link / pholio.link     -> PLATFORM_DOMAIN,    None
  links.example.com                 -> UNKNOWN,            None  (custom domain candidate)

Pure and total: no I/O, never raises.
"""

import enum
import ipaddress
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from app.config import RoutingConfig

PREVIEW_DELIMITER = "---"
RESERVED_LABELS = frozenset({"www", "localhost"})

_LOCALHOST_LABEL = re.compile(r"([a-z0-9-]+)\.localhost(?![a-z0-9-])")


class HostKind(str, enum.Enum):
    LOCALHOST = "localhost"
    PREVIEW_DEPLOYMENT = "preview"
    PLATFORM_DOMAIN = "platform"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HostDescriptor:
    raw_host: str
    kind: HostKind
    candidate_subdomain: Optional[str] = None


def normalize_host(host_header: str) -> str:
    """Lowercase, take the first forwarded value, strip port and trailing dot."""
    host = (host_header or "").split(",")[0].strip().lower()
    if host.startswith("["):
        # [::1]:3000
        end = host.find("]")
        host = host[1:end] if end != -1 else host[1:]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.rstrip(".")


def is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _is_loopback(host: str) -> bool:
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _clean_candidate(label: Optional[str]) -> Optional[str]:
    if not label or label in RESERVED_LABELS:
        return None
    return label


def _url_host(request_url: str) -> str:
    try:
        return urlsplit(request_url or "").hostname or ""
    except ValueError:
        return ""


def parse(host_header: str, request_url: str, config: RoutingConfig) -> HostDescriptor:
    host = normalize_host(host_header)
    url_host = _url_host(request_url)
    apex = config.apex_domain

    if not host and not url_host:
        return HostDescriptor(raw_host="", kind=HostKind.UNKNOWN)

    # 1. Local development: alice.localhost:3000
    if "localhost" in host or "localhost" in url_host or _is_loopback(host):
        candidate = None
        match = _LOCALHOST_LABEL.search(url_host)
        if match:
            candidate = match.group(1)
        elif host.endswith(".localhost"):
            candidate = host.split(".")[0]
        return HostDescriptor(host, HostKind.LOCALHOST, _clean_candidate(candidate))

    # 2. Preview deployments: alice---branch.vercel.app
    if PREVIEW_DELIMITER in host and config.preview_suffix and host.endswith(config.preview_suffix):
        candidate = host.split(PREVIEW_DELIMITER, 1)[0]
        return HostDescriptor(host, HostKind.PREVIEW_DEPLOYMENT, _clean_candidate(candidate))

    # 3. Apex / www, or a foreign host
    if host == apex or host == f"www.{apex}":
        return HostDescriptor(host, HostKind.PLATFORM_DOMAIN)
    if not host.endswith(f".{apex}"):
        return HostDescriptor(host, HostKind.UNKNOWN)

    # 4. Platform subdomain; a.b.<apex> keeps "a.b" whole
    prefix = host[: -(len(apex) + 1)]
    return HostDescriptor(host, HostKind.PLATFORM_DOMAIN, _clean_candidate(prefix))
