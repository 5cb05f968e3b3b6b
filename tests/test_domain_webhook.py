"""Domain setup webhook handling: signature gate, idempotence, stale callbacks."""
import pytest

from app.crud import crud_tenant
from app.models.tenant import DomainStatus, TenantId
from app.services.domain_webhook import CallbackOutcome, DomainWebhookReceiver
from app.services.signature import canonical_json, create_signature
from app.services.tenant_directory import TenantDirectory
from tests.conftest import PAID_EMAIL

SECRET = "webhook-test-secret"


@pytest.fixture
def directory(db):
    return TenantDirectory(cache_ttl=3600)


@pytest.fixture
def receiver(directory):
    return DomainWebhookReceiver(directory, secret=SECRET)


def _signed(payload: dict):
    body = canonical_json(payload)
    return body, create_signature(SECRET, body)


def _state(db):
    db.expire_all()
    return crud_tenant.get(db, TenantId(PAID_EMAIL))


def test_missing_signature_rejected(receiver, paid_tenant):
    body, _ = _signed({"userId": PAID_EMAIL, "domain": "links.example.org", "status": "active"})
    result = receiver.handle_callback(body, None)
    assert result.status_code == 401
    assert result.body == {"error": "Missing signature"}


def test_bit_flip_rejected_without_state_change(receiver, paid_tenant, db):
    body, signature = _signed({"userId": PAID_EMAIL, "domain": "links.example.org", "status": "active"})
    tampered = body.replace(b"active", b"activf")
    result = receiver.handle_callback(tampered, signature)
    assert result.status_code == 401
    assert result.outcome == CallbackOutcome.INVALID_SIGNATURE
    assert _state(db).custom_domain is None


def test_malformed_payload_after_valid_signature(receiver, paid_tenant):
    for payload in (b"not json", canonical_json({"userId": PAID_EMAIL, "status": "active"})):
        result = receiver.handle_callback(payload, create_signature(SECRET, payload))
        assert result.status_code == 400
        assert result.body == {"error": "Invalid payload"}

    body, signature = _signed({"userId": PAID_EMAIL, "domain": "x.example.org", "status": "done"})
    assert receiver.handle_callback(body, signature).outcome == CallbackOutcome.INVALID_PAYLOAD


def test_active_callback_applied_and_idempotent(receiver, directory, paid_tenant, db):
    directory.mark_pending(TenantId(PAID_EMAIL), "links.example.org", "req-1")
    body, signature = _signed({
        "userId": PAID_EMAIL,
        "domain": "links.example.org",
        "status": "active",
        "message": "SSL certificate issued",
        "requestId": "req-1",
    })

    first = receiver.handle_callback(body, signature)
    assert first.status_code == 200
    assert first.body == {"received": True}
    assert first.outcome == CallbackOutcome.APPLIED
    tenant = _state(db)
    assert tenant.custom_domain_status == DomainStatus.ACTIVE.value
    assert tenant.custom_domain_message == "SSL certificate issued"
    setup_at = tenant.custom_domain_setup_at

    second = receiver.handle_callback(body, signature)
    assert second.status_code == 200
    tenant = _state(db)
    assert tenant.custom_domain_status == DomainStatus.ACTIVE.value
    assert tenant.custom_domain == "links.example.org"
    assert tenant.custom_domain_setup_at >= setup_at


def test_failed_callback_stores_error(receiver, paid_tenant, db):
    body, signature = _signed({
        "userId": PAID_EMAIL.upper(),
        "domain": "Links.Example.org",
        "status": "failed",
        "error": "DNS not pointing to server",
    })
    result = receiver.handle_callback(body, signature)
    assert result.outcome == CallbackOutcome.APPLIED
    tenant = _state(db)
    assert tenant.custom_domain == "links.example.org"
    assert tenant.custom_domain_status == "failed"
    assert tenant.custom_domain_error == "DNS not pointing to server"


def test_pending_callback_is_informational(receiver, paid_tenant, db):
    body, signature = _signed({"userId": PAID_EMAIL, "domain": "links.example.org", "status": "pending"})
    result = receiver.handle_callback(body, signature)
    assert result.status_code == 200
    assert result.outcome == CallbackOutcome.INFORMATIONAL
    assert _state(db).custom_domain is None


def test_unknown_tenant_acknowledged(receiver, db):
    body, signature = _signed({"userId": "ghost@example.org", "domain": "g.example.org", "status": "active"})
    result = receiver.handle_callback(body, signature)
    assert result.status_code == 200
    assert result.outcome == CallbackOutcome.UNKNOWN_TENANT


def test_superseded_request_ignored(receiver, directory, paid_tenant, db):
    tid = TenantId(PAID_EMAIL)
    directory.mark_pending(tid, "old.example.org", "req-1")
    directory.mark_pending(tid, "new.example.org", "req-2")

    body, signature = _signed({
        "userId": PAID_EMAIL, "domain": "old.example.org", "status": "active", "requestId": "req-1",
    })
    result = receiver.handle_callback(body, signature)
    assert result.status_code == 200
    assert result.outcome == CallbackOutcome.STALE
    tenant = _state(db)
    assert tenant.custom_domain == "new.example.org"
    assert tenant.custom_domain_status == "pending"


def test_callback_for_domain_owned_elsewhere(receiver, directory, paid_tenant, free_tenant, db):
    directory.set_custom_domain(free_tenant.tenant_id, "links.example.org")
    body, signature = _signed({"userId": PAID_EMAIL, "domain": "links.example.org", "status": "active"})
    result = receiver.handle_callback(body, signature)
    assert result.status_code == 200
    assert result.outcome == CallbackOutcome.CONFLICT
    assert _state(db).custom_domain is None


def test_long_remote_error_is_truncated(receiver, paid_tenant, db):
    body, signature = _signed({
        "userId": PAID_EMAIL,
        "domain": "links.example.org",
        "status": "failed",
        "message": "m" * 700,
        "error": "e" * 600,
    })
    result = receiver.handle_callback(body, signature)
    assert result.status_code == 200
    assert result.outcome == CallbackOutcome.APPLIED
    tenant = _state(db)
    assert tenant.custom_domain_error == "e" * 500
    assert tenant.custom_domain_message == "m" * 500


class _RemovingDirectory(TenantDirectory):
    """Tenant removes the domain right after the token check."""

    def get_request_id(self, tenant_id):
        found = super().get_request_id(tenant_id)
        self.clear_custom_domain(tenant_id)
        return found


def test_removal_between_token_check_and_write_wins(paid_tenant, db):
    directory = _RemovingDirectory(cache_ttl=3600)
    directory.mark_pending(TenantId(PAID_EMAIL), "links.example.org", "req-1")
    receiver = DomainWebhookReceiver(directory, secret=SECRET)

    body, signature = _signed({
        "userId": PAID_EMAIL, "domain": "links.example.org", "status": "active", "requestId": "req-1",
    })
    result = receiver.handle_callback(body, signature)
    assert result.status_code == 200
    assert result.outcome == CallbackOutcome.STALE
    tenant = _state(db)
    assert tenant.custom_domain is None
    assert tenant.custom_domain_status == "none"
