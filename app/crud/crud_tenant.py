from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.tenant import DomainStatus, Tenant, TenantId

# Length of the free-text message / error columns
MAX_TEXT_LENGTH = 500


class DomainConflictError(Exception):
    """The domain is already claimed by another tenant."""

    def __init__(self, domain: str):
        super().__init__(f"Domain {domain} is already taken")
        self.domain = domain


def get(db: Session, tenant_id: TenantId) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.email == tenant_id.value).first()


def get_by_username(db: Session, username: str) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.username == username.lower()).first()


def get_by_custom_domain(db: Session, domain: str) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.custom_domain == domain.lower()).first()


def create(db: Session, *, email: str, username: str, subscription_tier: str = "free") -> Tenant:
    db_obj = Tenant(
        email=TenantId.from_wire(email).value,
        username=username.lower(),
        subscription_tier=subscription_tier,
        custom_domain_status=DomainStatus.NONE.value,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


# ═══════════════════════════════════════════
#  Custom domain writes
# ═══════════════════════════════════════════

def set_custom_domain(db: Session, tenant_id: TenantId, domain: str) -> bool:
    """Claim ``domain`` for the tenant.

    Conditional write: the row is only updated when no other tenant holds the
    domain; the unique index on ``custom_domain`` settles concurrent claims.
    Returns False when the tenant does not exist.
    """
    domain = domain.lower()
    owner = get_by_custom_domain(db, domain)
    if owner is not None:
        if owner.email != tenant_id.value:
            raise DomainConflictError(domain)
        # Already held by this tenant, keep its status
        return True

    stmt = (
        update(Tenant)
        .where(Tenant.email == tenant_id.value)
        .values(
            custom_domain=domain,
            custom_domain_status=DomainStatus.NONE.value,
            custom_domain_error=None,
            custom_domain_message=None,
            custom_domain_setup_at=None,
            custom_domain_request_id=None,
        )
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DomainConflictError(domain)
    return result.rowcount > 0


def clear_custom_domain(db: Session, tenant_id: TenantId) -> bool:
    result = db.execute(
        update(Tenant)
        .where(Tenant.email == tenant_id.value)
        .values(
            custom_domain=None,
            custom_domain_status=DomainStatus.NONE.value,
            custom_domain_error=None,
            custom_domain_message=None,
            custom_domain_setup_at=None,
            custom_domain_request_id=None,
        )
    )
    db.commit()
    return result.rowcount > 0


def mark_pending(db: Session, tenant_id: TenantId, domain: str, request_id: str) -> bool:
    """Record an outbound setup request. Only the webhook may move it further."""
    domain = domain.lower()
    owner = get_by_custom_domain(db, domain)
    if owner is not None and owner.email != tenant_id.value:
        raise DomainConflictError(domain)
    try:
        result = db.execute(
            update(Tenant)
            .where(Tenant.email == tenant_id.value)
            .values(
                custom_domain=domain,
                custom_domain_status=DomainStatus.PENDING.value,
                custom_domain_error=None,
                custom_domain_request_id=request_id,
            )
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DomainConflictError(domain)
    return result.rowcount > 0


def apply_domain_status(
    db: Session,
    tenant_id: TenantId,
    *,
    domain: str,
    status: DomainStatus,
    message: Optional[str] = None,
    error: Optional[str] = None,
    request_id: Optional[str] = None,
) -> bool:
    """Single atomic update from a verified provisioning callback.

    With ``request_id`` the row only matches while that setup request is
    still the tenant's current one. Returns whether a tenant row matched.
    """
    values = {
        "custom_domain": domain.lower(),
        "custom_domain_status": status.value,
        "custom_domain_setup_at": datetime.now(timezone.utc),
    }
    if message:
        values["custom_domain_message"] = message[:MAX_TEXT_LENGTH]
    if error:
        values["custom_domain_error"] = error[:MAX_TEXT_LENGTH]
    elif status == DomainStatus.ACTIVE:
        values["custom_domain_error"] = None

    try:
        stmt = update(Tenant).where(Tenant.email == tenant_id.value)
        if request_id:
            stmt = stmt.where(Tenant.custom_domain_request_id == request_id)
        result = db.execute(stmt.values(**values))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DomainConflictError(domain)
    return result.rowcount > 0


def abort_pending(db: Session, tenant_id: TenantId, request_id: str, error: str) -> bool:
    """Undo mark_pending when the setup request never reached the service.

    Only touches the row while ``request_id`` is still the in-flight one.
    """
    result = db.execute(
        update(Tenant)
        .where(
            Tenant.email == tenant_id.value,
            Tenant.custom_domain_request_id == request_id,
            Tenant.custom_domain_status == DomainStatus.PENDING.value,
        )
        .values(
            custom_domain_status=DomainStatus.NONE.value,
            custom_domain_error=error[:MAX_TEXT_LENGTH],
            custom_domain_request_id=None,
        )
    )
    db.commit()
    return result.rowcount > 0
