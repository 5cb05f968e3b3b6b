"""
Tenant directory: read/write access to tenant domain state.

Sits between the tenant store and the routing / provisioning code. Custom
domain lookups are cached in-process (hits and misses alike) because they
run on every request to a non-platform host; every write that changes a
domain owner invalidates the affected entries.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.crud import crud_tenant
from app.db.session import SessionLocal
from app.models.tenant import DomainStatus, Tenant, TenantId

logger = logging.getLogger("linkhost.directory")


@dataclass(frozen=True)
class TenantRef:
    tenant_id: TenantId
    username: str
    custom_domain: Optional[str] = None
    custom_domain_status: str = DomainStatus.NONE.value

    @classmethod
    def from_model(cls, tenant: Tenant) -> "TenantRef":
        return cls(
            tenant_id=tenant.tenant_id,
            username=tenant.username,
            custom_domain=tenant.custom_domain,
            custom_domain_status=tenant.custom_domain_status or DomainStatus.NONE.value,
        )


class DomainCache:
    """TTL cache of domain -> TenantRef, storing None for misses.

    Keys come from the visitor-supplied Host header, so the cache is bounded:
    expired entries are swept once it is full, then the oldest are evicted.
    """

    def __init__(self, ttl: float, max_entries: int = 10_000):
        self.ttl = ttl
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[float, Optional[TenantRef]]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, domain: str) -> Tuple[bool, Optional[TenantRef]]:
        with self._lock:
            entry = self._entries.get(domain)
            if entry is None:
                return False, None
            stored_at, ref = entry
            if time.monotonic() - stored_at >= self.ttl:
                del self._entries[domain]
                return False, None
            return True, ref

    def set(self, domain: str, ref: Optional[TenantRef]) -> None:
        if self.ttl <= 0 or self.max_entries <= 0:
            return
        with self._lock:
            now = time.monotonic()
            self._entries.pop(domain, None)
            if len(self._entries) >= self.max_entries:
                self._sweep(now)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[domain] = (now, ref)

    def _sweep(self, now: float) -> None:
        # insertion order == age order
        while self._entries:
            domain, (stored_at, _) = next(iter(self._entries.items()))
            if now - stored_at < self.ttl:
                break
            del self._entries[domain]

    def invalidate(self, domain: Optional[str] = None) -> None:
        with self._lock:
            if domain:
                self._entries.pop(domain.lower(), None)
            else:
                self._entries.clear()


class TenantDirectory:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        cache_ttl: float = settings.DOMAIN_CACHE_TTL,
        cache_max_entries: int = settings.DOMAIN_CACHE_MAX_ENTRIES,
    ):
        self._session_factory = session_factory
        self.cache = DomainCache(cache_ttl, cache_max_entries)

    # ── Reads ──

    def get(self, tenant_id: TenantId) -> Optional[TenantRef]:
        db = self._session_factory()
        try:
            tenant = crud_tenant.get(db, tenant_id)
            return TenantRef.from_model(tenant) if tenant else None
        finally:
            db.close()

    def find_tenant_by_subdomain_label(self, label: str) -> Optional[TenantRef]:
        """Platform subdomains are the tenant's username, so this is a direct lookup."""
        db = self._session_factory()
        try:
            tenant = crud_tenant.get_by_username(db, label)
            return TenantRef.from_model(tenant) if tenant else None
        finally:
            db.close()

    def find_tenant_by_custom_domain(self, domain: str) -> Optional[TenantRef]:
        domain = domain.lower()
        hit, ref = self.cache.get(domain)
        if hit:
            return ref

        db = self._session_factory()
        try:
            tenant = crud_tenant.get_by_custom_domain(db, domain)
            ref = TenantRef.from_model(tenant) if tenant else None
        finally:
            db.close()

        self.cache.set(domain, ref)
        logger.debug("Custom domain lookup %s -> %s", domain, ref.username if ref else None)
        return ref

    async def afind_tenant_by_custom_domain(self, domain: str) -> Optional[TenantRef]:
        return await run_in_threadpool(self.find_tenant_by_custom_domain, domain)

    # ── Writes ──

    def _write(self, tenant_id: TenantId, op: Callable[[Session], bool], *domains: str) -> bool:
        db = self._session_factory()
        try:
            previous = crud_tenant.get(db, tenant_id)
            previous_domain = previous.custom_domain if previous else None
            matched = op(db)
        finally:
            db.close()
        for d in (previous_domain, *domains):
            if d:
                self.cache.invalidate(d)
        return matched

    def set_custom_domain(self, tenant_id: TenantId, domain: str) -> bool:
        """Claim a domain. Raises DomainConflictError if another tenant holds it."""
        return self._write(
            tenant_id,
            lambda db: crud_tenant.set_custom_domain(db, tenant_id, domain),
            domain,
        )

    def clear_custom_domain(self, tenant_id: TenantId) -> bool:
        return self._write(tenant_id, lambda db: crud_tenant.clear_custom_domain(db, tenant_id))

    def mark_pending(self, tenant_id: TenantId, domain: str, request_id: str) -> bool:
        return self._write(
            tenant_id,
            lambda db: crud_tenant.mark_pending(db, tenant_id, domain, request_id),
            domain,
        )

    def abort_pending(self, tenant_id: TenantId, request_id: str, error: str) -> bool:
        return self._write(
            tenant_id, lambda db: crud_tenant.abort_pending(db, tenant_id, request_id, error)
        )

    def get_request_id(self, tenant_id: TenantId) -> Tuple[bool, Optional[str], Optional[str]]:
        """Return (exists, current custom domain, in-flight setup request id)."""
        db = self._session_factory()
        try:
            tenant = crud_tenant.get(db, tenant_id)
            if tenant is None:
                return False, None, None
            return True, tenant.custom_domain, tenant.custom_domain_request_id
        finally:
            db.close()

    def apply_domain_status(
        self,
        tenant_id: TenantId,
        *,
        domain: str,
        status: DomainStatus,
        message: Optional[str] = None,
        error: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> bool:
        return self._write(
            tenant_id,
            lambda db: crud_tenant.apply_domain_status(
                db, tenant_id, domain=domain, status=status,
                message=message, error=error, request_id=request_id,
            ),
            domain,
        )


tenant_directory = TenantDirectory()
