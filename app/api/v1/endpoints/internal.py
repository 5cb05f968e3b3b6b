"""Internal lookups used by edge components (no auth, read-only)."""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from app.api import deps
from app.schemas.custom_domain import DomainLookupResult
from app.services.tenant_directory import TenantDirectory

router = APIRouter()


@router.get("/lookup-domain", response_model=DomainLookupResult)
def lookup_domain(
    domain: str = Query(""),
    directory: TenantDirectory = Depends(deps.get_tenant_directory),
) -> Any:
    """Custom domain -> tenant username, exact match only."""
    if not domain.strip():
        raise HTTPException(status_code=400, detail="Domain required")

    tenant = directory.find_tenant_by_custom_domain(domain.strip())
    if tenant is None:
        return JSONResponse(status_code=404, content={"username": None})
    return DomainLookupResult(username=tenant.username)
