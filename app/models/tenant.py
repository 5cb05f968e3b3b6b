import enum
import uuid
from dataclasses import dataclass
from sqlalchemy import Column, String, DateTime, Uuid, func
from app.db.base_class import Base


class DomainStatus(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass(frozen=True)
class TenantId:
    """Tenant identity as used across the provisioning handshake.

    The wire payload carries it as a loosely typed ``userId`` string (the
    account email); inside the process it is always this value object.
    """

    value: str

    @classmethod
    def from_wire(cls, raw: str) -> "TenantId":
        return cls(raw.strip().lower())

    def __str__(self) -> str:
        return self.value


class Tenant(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(320), unique=True, nullable=False, index=True)  # wire userId
    username = Column(String(63), unique=True, nullable=False, index=True)  # platform subdomain label
    subscription_tier = Column(String(20), default="free")  # free, paid
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # ── Custom domain ──
    custom_domain = Column(String(253), nullable=True, unique=True, index=True)
    custom_domain_status = Column(String(16), nullable=False, default=DomainStatus.NONE.value)
    custom_domain_error = Column(String(500), nullable=True)
    custom_domain_message = Column(String(500), nullable=True)
    custom_domain_setup_at = Column(DateTime(timezone=True), nullable=True)
    custom_domain_request_id = Column(String(64), nullable=True)  # token of the in-flight setup request

    @property
    def tenant_id(self) -> TenantId:
        return TenantId(self.email)
