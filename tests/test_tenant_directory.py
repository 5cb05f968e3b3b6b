"""Tenant directory against the in-memory tenant store."""
import pytest

from app.crud import crud_tenant
from app.crud.crud_tenant import DomainConflictError
from app.models.tenant import DomainStatus, TenantId
from app.services.tenant_directory import DomainCache, TenantDirectory, TenantRef
from tests.conftest import FREE_EMAIL, PAID_EMAIL


@pytest.fixture
def directory(db):
    return TenantDirectory(cache_ttl=3600)


def test_claim_and_lookup(directory, paid_tenant):
    tid = TenantId(PAID_EMAIL)
    assert directory.set_custom_domain(tid, "Links.Example.org") is True

    ref = directory.find_tenant_by_custom_domain("links.example.org")
    assert ref.username == "alice"
    assert ref.tenant_id == tid
    assert ref.custom_domain_status == DomainStatus.NONE.value


def test_domain_is_unique_across_tenants(directory, paid_tenant, free_tenant):
    directory.set_custom_domain(TenantId(PAID_EMAIL), "links.example.org")
    with pytest.raises(DomainConflictError):
        directory.set_custom_domain(TenantId(FREE_EMAIL), "links.example.org")
    with pytest.raises(DomainConflictError):
        directory.mark_pending(TenantId(FREE_EMAIL), "LINKS.example.org", "r1")
    assert directory.find_tenant_by_custom_domain("links.example.org").username == "alice"


def test_reclaiming_own_domain_keeps_status(directory, paid_tenant):
    tid = TenantId(PAID_EMAIL)
    directory.set_custom_domain(tid, "links.example.org")
    directory.apply_domain_status(tid, domain="links.example.org", status=DomainStatus.ACTIVE)
    assert directory.set_custom_domain(tid, "links.example.org") is True
    assert directory.find_tenant_by_custom_domain("links.example.org").custom_domain_status == "active"


def test_unknown_tenant_write_matches_nothing(directory, db):
    assert directory.set_custom_domain(TenantId("ghost@example.org"), "ghost.example.org") is False
    assert directory.find_tenant_by_custom_domain("ghost.example.org") is None


def test_subdomain_label_lookup(directory, paid_tenant):
    assert directory.find_tenant_by_subdomain_label("ALICE").username == "alice"
    assert directory.find_tenant_by_subdomain_label("nobody") is None


def test_negative_result_is_cached(directory, paid_tenant, db):
    assert directory.find_tenant_by_custom_domain("links.example.org") is None
    # written behind the directory's back, the cached miss still answers
    crud_tenant.set_custom_domain(db, TenantId(PAID_EMAIL), "links.example.org")
    assert directory.find_tenant_by_custom_domain("links.example.org") is None

    directory.cache.invalidate("links.example.org")
    assert directory.find_tenant_by_custom_domain("links.example.org").username == "alice"


def test_writes_invalidate_old_and_new_domain(directory, paid_tenant):
    tid = TenantId(PAID_EMAIL)
    directory.set_custom_domain(tid, "old.example.org")
    assert directory.find_tenant_by_custom_domain("old.example.org") is not None
    assert directory.find_tenant_by_custom_domain("new.example.org") is None

    directory.set_custom_domain(tid, "new.example.org")
    assert directory.find_tenant_by_custom_domain("old.example.org") is None
    assert directory.find_tenant_by_custom_domain("new.example.org").username == "alice"

    directory.clear_custom_domain(tid)
    assert directory.find_tenant_by_custom_domain("new.example.org") is None


def test_pending_lifecycle(directory, paid_tenant):
    tid = TenantId(PAID_EMAIL)
    assert directory.mark_pending(tid, "links.example.org", "req-1") is True
    assert directory.get_request_id(tid) == (True, "links.example.org", "req-1")

    # a stale token does not roll back the current request
    assert directory.abort_pending(tid, "req-0", "boom") is False
    assert directory.abort_pending(tid, "req-1", "unreachable") is True

    ref = directory.get(tid)
    assert ref.custom_domain == "links.example.org"
    assert ref.custom_domain_status == DomainStatus.NONE.value
    assert directory.get_request_id(tid) == (True, "links.example.org", None)


def test_apply_status_records_error_and_clears_on_active(directory, paid_tenant, db):
    tid = TenantId(PAID_EMAIL)
    directory.mark_pending(tid, "links.example.org", "req-1")
    directory.apply_domain_status(
        tid, domain="links.example.org", status=DomainStatus.FAILED, error="Certificate issuance failed"
    )
    db.expire_all()
    tenant = crud_tenant.get(db, tid)
    assert tenant.custom_domain_status == "failed"
    assert tenant.custom_domain_error == "Certificate issuance failed"
    assert tenant.custom_domain_setup_at is not None

    directory.apply_domain_status(
        tid, domain="links.example.org", status=DomainStatus.ACTIVE, message="Domain is live"
    )
    db.expire_all()
    tenant = crud_tenant.get(db, tid)
    assert tenant.custom_domain_status == "active"
    assert tenant.custom_domain_error is None
    assert tenant.custom_domain_message == "Domain is live"


def test_get_request_id_unknown_tenant(directory, db):
    assert directory.get_request_id(TenantId("ghost@example.org")) == (False, None, None)


def test_cache_ttl_expiry(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr("app.services.tenant_directory.time.monotonic", lambda: clock[0])
    cache = DomainCache(ttl=10)
    ref = TenantRef(TenantId(PAID_EMAIL), "alice", "links.example.org")

    cache.set("links.example.org", ref)
    assert cache.get("links.example.org") == (True, ref)
    clock[0] += 10
    assert cache.get("links.example.org") == (False, None)


def test_zero_ttl_disables_cache():
    cache = DomainCache(ttl=0)
    cache.set("links.example.org", None)
    assert cache.get("links.example.org") == (False, None)


def test_cache_size_is_bounded_for_random_hosts(db):
    directory = TenantDirectory(cache_ttl=3600, cache_max_entries=100)
    for i in range(500):
        assert directory.find_tenant_by_custom_domain(f"rnd{i}.attacker.test") is None
    assert len(directory.cache) == 100
    # newest entries survive, oldest were evicted
    assert directory.cache.get("rnd499.attacker.test") == (True, None)
    assert directory.cache.get("rnd0.attacker.test") == (False, None)


def test_full_cache_sweeps_expired_before_evicting(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr("app.services.tenant_directory.time.monotonic", lambda: clock[0])
    cache = DomainCache(ttl=10, max_entries=3)
    cache.set("a.example.org", None)
    cache.set("b.example.org", None)
    clock[0] += 5
    cache.set("c.example.org", None)
    clock[0] += 6  # a and b expired, c still fresh

    cache.set("d.example.org", None)
    assert len(cache) == 2
    assert cache.get("c.example.org") == (True, None)
    assert cache.get("d.example.org") == (True, None)


def test_apply_status_with_request_id_requires_current_token(directory, paid_tenant):
    tid = TenantId(PAID_EMAIL)
    directory.mark_pending(tid, "links.example.org", "req-2")
    assert directory.apply_domain_status(
        tid, domain="links.example.org", status=DomainStatus.ACTIVE, request_id="req-1"
    ) is False
    assert directory.get(tid).custom_domain_status == "pending"
    assert directory.apply_domain_status(
        tid, domain="links.example.org", status=DomainStatus.ACTIVE, request_id="req-2"
    ) is True
    assert directory.get(tid).custom_domain_status == "active"
