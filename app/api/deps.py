"""
Shared FastAPI dependencies.

Sessions are issued by the external auth provider; this service only
verifies the bearer token (HS256, SECRET_KEY) and reads the tenant id
from its ``sub`` claim.
"""
from typing import Generator, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_tenant
from app.db.session import SessionLocal
from app.models.tenant import Tenant, TenantId
from app.services.domain_setup_client import DomainSetupClient
from app.services.tenant_directory import TenantDirectory, tenant_directory

bearer_scheme = HTTPBearer(auto_error=False)

_domain_setup_client: Optional[DomainSetupClient] = None


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_tenant_directory() -> TenantDirectory:
    return tenant_directory


def get_domain_setup_client() -> DomainSetupClient:
    global _domain_setup_client
    if _domain_setup_client is None:
        _domain_setup_client = DomainSetupClient()
    return _domain_setup_client


def get_current_tenant(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Tenant:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        payload = jwt.decode(
            credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials"
        )
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    tenant = crud_tenant.get(db, TenantId.from_wire(str(subject)))
    if not tenant:
        raise HTTPException(status_code=404, detail="User not found")
    return tenant
