from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Tenant-facing API ──

class CustomDomainInfo(BaseModel):
    custom_domain: Optional[str] = None
    status: str = "none"
    error: Optional[str] = None
    message: Optional[str] = None
    setup_at: Optional[datetime] = None
    subscription_tier: Optional[str] = None


class CustomDomainUpdate(BaseModel):
    custom_domain: str = Field(alias="customDomain")

    model_config = ConfigDict(populate_by_name=True)


class DomainRequest(BaseModel):
    domain: str


class DomainVerifyResult(BaseModel):
    verified: bool
    domain: str
    ip: Optional[str] = None
    current_ips: List[str] = []
    message: str


class DomainLookupResult(BaseModel):
    username: Optional[str] = None


# ── Provisioning service wire format ──

class DomainSetupCallback(BaseModel):
    """Body of the provisioning service's completion webhook."""

    user_id: str = Field(alias="userId", min_length=1)
    domain: str = Field(min_length=1)
    status: Literal["active", "failed", "pending"]
    message: Optional[str] = None
    error: Optional[str] = None
    request_id: Optional[str] = Field(default=None, alias="requestId")

    model_config = ConfigDict(populate_by_name=True)
