"""
Tenant routing decisions.

Given a parsed host and the request path, decide whether the request is
rewritten to a tenant-scoped path, redirected to the canonical host, passed
through unchanged, or rejected.

Rules:
  Platform / preview / localhost subdomain tenant
    - auth pages            -> redirect to the platform root
    - "/"                   -> redirect to <canonical>/s/<tenant>
    - anything else         -> rewrite to /<tenant><path>
  Apex / www                -> pass through
  Unknown host (custom domain candidate)
    - exact domain match, then root-domain fallback (drop leftmost label)
    - "/"                   -> rewrite to /<username>
    - tenant-owned paths    -> pass through
    - anything else         -> rewrite to /<username>
    - no match, lookup error or timeout -> pass through
"""

import asyncio
import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

from app.config import RoutingConfig
from app.services.hostname import HostDescriptor, HostKind, is_ip_literal
from app.services.tenant_directory import TenantDirectory, TenantRef

logger = logging.getLogger("linkhost.routing")

# Platform subdomain candidates must look like hostname labels (dots allowed)
_SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9.-]{0,251}[a-z0-9])?$")


class RoutingAction(str, enum.Enum):
    REWRITE = "rewrite"
    REDIRECT = "redirect"
    PASS_THROUGH = "pass_through"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RoutingDecision:
    action: RoutingAction
    target_path: Optional[str] = None
    target_url: Optional[str] = None
    tenant: Optional[str] = None  # resolved username / subdomain, informational

    def __post_init__(self):
        if self.action == RoutingAction.REWRITE and (not self.target_path or self.target_url):
            raise ValueError("REWRITE requires target_path only")
        if self.action == RoutingAction.REDIRECT and (not self.target_url or self.target_path):
            raise ValueError("REDIRECT requires target_url only")
        if self.action in (RoutingAction.PASS_THROUGH, RoutingAction.NOT_FOUND) and (
            self.target_path or self.target_url
        ):
            raise ValueError(f"{self.action.value} carries no target")

    @classmethod
    def rewrite(cls, path: str, tenant: Optional[str] = None) -> "RoutingDecision":
        return cls(RoutingAction.REWRITE, target_path=path, tenant=tenant)

    @classmethod
    def redirect(cls, url: str, tenant: Optional[str] = None) -> "RoutingDecision":
        return cls(RoutingAction.REDIRECT, target_url=url, tenant=tenant)

    @classmethod
    def pass_through(cls, tenant: Optional[str] = None) -> "RoutingDecision":
        return cls(RoutingAction.PASS_THROUGH, tenant=tenant)

    @classmethod
    def not_found(cls) -> "RoutingDecision":
        return cls(RoutingAction.NOT_FOUND)


def _matches_prefix(path: str, prefixes) -> bool:
    for prefix in prefixes:
        if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
            return True
        # file-like prefixes such as /favicon.ico
        if "." in prefix and path.startswith(prefix):
            return True
    return False


def _tenant_path(tenant: str, path: str) -> str:
    if path in ("", "/"):
        return f"/{tenant}"
    return f"/{tenant}{path}"


def root_domain(host: str) -> Optional[str]:
    """links.example.com -> example.com; None for hosts with two labels or fewer."""
    labels = host.split(".")
    if len(labels) <= 2:
        return None
    return ".".join(labels[1:])


class RoutingEngine:
    def __init__(self, config: RoutingConfig, directory: TenantDirectory):
        self.config = config
        self.directory = directory

    async def decide(self, descriptor: HostDescriptor, path: str) -> RoutingDecision:
        path = path or "/"

        if _matches_prefix(path, self.config.bypass_prefixes):
            return RoutingDecision.pass_through()

        candidate = descriptor.candidate_subdomain
        if descriptor.kind != HostKind.UNKNOWN:
            if candidate is None:
                return RoutingDecision.pass_through()
            return self._decide_subdomain(candidate, path)

        return await self._decide_custom_domain(descriptor.raw_host, path)

    # ── Platform subdomains ──

    def _decide_subdomain(self, tenant: str, path: str) -> RoutingDecision:
        if not _SUBDOMAIN_PATTERN.match(tenant):
            return RoutingDecision.not_found()

        if _matches_prefix(path, self.config.auth_paths):
            # Auth lives on the root host
            return RoutingDecision.redirect(f"{self.config.canonical_url}/", tenant=tenant)

        if path == "/":
            return RoutingDecision.redirect(f"{self.config.canonical_url}/s/{tenant}", tenant=tenant)

        return RoutingDecision.rewrite(_tenant_path(tenant, path), tenant=tenant)

    # ── Custom domains ──

    def _is_reserved(self, host: str) -> bool:
        apex = self.config.apex_domain
        return (
            not host
            or is_ip_literal(host)
            or host in self.config.reserved_hosts
            or host == apex
            or host.endswith(f".{apex}")
        )

    async def _lookup(self, domain: str) -> Optional[TenantRef]:
        return await asyncio.wait_for(
            self.directory.afind_tenant_by_custom_domain(domain),
            timeout=self.config.lookup_timeout,
        )

    async def _decide_custom_domain(self, host: str, path: str) -> RoutingDecision:
        if self._is_reserved(host):
            return RoutingDecision.pass_through()

        try:
            tenant = await self._lookup(host)
            if tenant is not None:
                logger.debug("Custom domain exact match: %s -> %s", host, tenant.username)
            else:
                root = root_domain(host)
                if root is not None:
                    tenant = await self._lookup(root)
                    if tenant is not None:
                        logger.debug(
                            "Custom domain root fallback: %s -> %s -> %s",
                            host, root, tenant.username,
                        )
        except asyncio.TimeoutError:
            logger.warning("Custom domain lookup timed out for %s", host)
            return RoutingDecision.pass_through()
        except Exception as e:
            logger.warning("Custom domain resolution failed for %s: %s", host, e)
            return RoutingDecision.pass_through()

        if tenant is None:
            return RoutingDecision.pass_through()

        if path != "/" and _matches_prefix(path, self.config.tenant_owned_paths):
            return RoutingDecision.pass_through(tenant=tenant.username)
        # Custom domains serve only the tenant profile page
        return RoutingDecision.rewrite(f"/{tenant.username}", tenant=tenant.username)
