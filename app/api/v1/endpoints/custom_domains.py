"""
Custom Domain Management API

Allows a tenant on an eligible plan to:
  1. Claim a custom domain (format, blacklist and uniqueness checks)
  2. Verify the DNS A record points at the platform server
  3. Trigger provisioning on the domain setup service (reverse proxy + TLS)
  4. Poll the provisioning status / remove the domain

The domain only becomes "active" through the signed webhook
(see app.api.v1.endpoints.webhooks).
"""
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.api import deps
from app.config import settings
from app.crud.crud_tenant import DomainConflictError
from app.middleware.metrics import DOMAIN_SETUP_REQUESTS
from app.models.tenant import DomainStatus, Tenant
from app.schemas.custom_domain import (
    CustomDomainInfo,
    CustomDomainUpdate,
    DomainRequest,
    DomainVerifyResult,
)
from app.services.domain_setup_client import (
    DomainSetupClient,
    DomainSetupRejected,
    DomainSetupUnavailable,
)
from app.services.domain_validation import check_blacklist, validate_format
from app.services.tenant_directory import TenantDirectory

router = APIRouter()
logger = logging.getLogger("linkhost.custom_domain")


# ── Helpers ──

def _ensure_plan(tenant: Tenant):
    allowed = {p.strip() for p in settings.CUSTOM_DOMAIN_PLANS.split(",") if p.strip()}
    if tenant.subscription_tier not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Custom domains are only available for Pro members",
        )


def _checked_domain(raw: str) -> str:
    """Normalize and run the format + blacklist checks, 400 on failure."""
    domain = (raw or "").strip().lower()
    validation = validate_format(domain)
    if not validation.valid:
        raise HTTPException(status_code=400, detail=validation.error)
    blacklist = check_blacklist(domain)
    if blacklist.blacklisted:
        raise HTTPException(status_code=400, detail=blacklist.reason)
    return domain


def _info(tenant: Tenant) -> CustomDomainInfo:
    return CustomDomainInfo(
        custom_domain=tenant.custom_domain,
        status=tenant.custom_domain_status or DomainStatus.NONE.value,
        error=tenant.custom_domain_error,
        message=tenant.custom_domain_message,
        setup_at=tenant.custom_domain_setup_at,
        subscription_tier=tenant.subscription_tier,
    )


# ── Endpoints ──

@router.get("/", response_model=CustomDomainInfo)
def get_custom_domain(
    current_tenant: Tenant = Depends(deps.get_current_tenant),
) -> Any:
    """Current custom domain and its provisioning state."""
    return _info(current_tenant)


@router.post("/")
def set_custom_domain(
    body: CustomDomainUpdate,
    current_tenant: Tenant = Depends(deps.get_current_tenant),
    directory: TenantDirectory = Depends(deps.get_tenant_directory),
) -> Any:
    """Claim a custom domain. DNS must then point at SERVER_IP."""
    _ensure_plan(current_tenant)
    domain = _checked_domain(body.custom_domain)

    try:
        directory.set_custom_domain(current_tenant.tenant_id, domain)
    except DomainConflictError:
        raise HTTPException(status_code=409, detail="This domain is already taken")

    logger.info("Custom domain claimed: %s by %s", domain, current_tenant.username)
    return {
        "success": True,
        "customDomain": domain,
        "message": f"Custom domain updated successfully. Point an A record for {domain} at {settings.SERVER_IP}.",
    }


@router.delete("/")
def remove_custom_domain(
    current_tenant: Tenant = Depends(deps.get_current_tenant),
    directory: TenantDirectory = Depends(deps.get_tenant_directory),
) -> Any:
    """Remove the custom domain. An in-flight provisioning job is not cancelled remotely."""
    domain = current_tenant.custom_domain
    directory.clear_custom_domain(current_tenant.tenant_id)
    logger.info("Custom domain removed: %s by %s", domain, current_tenant.username)
    return {"success": True, "message": "Custom domain removed successfully"}


@router.post("/verify", response_model=DomainVerifyResult)
def verify_dns(
    body: DomainRequest,
    current_tenant: Tenant = Depends(deps.get_current_tenant),
) -> Any:
    """Check that the domain's A record points at the platform server."""
    domain = _checked_domain(body.domain)
    server_ip = settings.SERVER_IP

    import dns.exception
    import dns.resolver

    try:
        answers = dns.resolver.resolve(domain, "A", lifetime=5.0)
        addresses = sorted({rdata.to_text() for rdata in answers})
    except dns.resolver.NXDOMAIN:
        raise HTTPException(
            status_code=400,
            detail=f"Domain {domain} not found. Please check the domain name and try again.",
        )
    except dns.resolver.NoAnswer:
        addresses = []
    except dns.exception.Timeout:
        raise HTTPException(
            status_code=400, detail=f"DNS lookup timed out for {domain}. Please try again."
        )
    except dns.exception.DNSException as e:
        logger.info("DNS verification failed for %s: %s", domain, e)
        raise HTTPException(status_code=500, detail="Failed to verify DNS record. Please try again.")

    if not addresses:
        raise HTTPException(
            status_code=400,
            detail=f"No A record found for {domain}. Make sure you've added the A record pointing to {server_ip}",
        )

    if server_ip not in addresses:
        return JSONResponse(
            status_code=400,
            content=DomainVerifyResult(
                verified=False,
                domain=domain,
                current_ips=addresses,
                message=(
                    f"Domain {domain} is currently pointing to {', '.join(addresses)}. "
                    f"Please update your DNS A record to point to {server_ip}"
                ),
            ).model_dump(),
        )

    logger.info("DNS verified for %s (tenant %s)", domain, current_tenant.username)
    return DomainVerifyResult(
        verified=True,
        domain=domain,
        ip=server_ip,
        current_ips=addresses,
        message=f"DNS record verified! {domain} is correctly pointing to {server_ip}",
    )


@router.post("/setup", status_code=202)
async def setup_custom_domain(
    body: DomainRequest,
    current_tenant: Tenant = Depends(deps.get_current_tenant),
    directory: TenantDirectory = Depends(deps.get_tenant_directory),
    client: DomainSetupClient = Depends(deps.get_domain_setup_client),
) -> Any:
    """Ask the domain setup service to provision the domain (202, completes via webhook)."""
    _ensure_plan(current_tenant)
    domain = _checked_domain(body.domain)
    tenant_id = current_tenant.tenant_id
    request_id = uuid.uuid4().hex

    try:
        await run_in_threadpool(directory.mark_pending, tenant_id, domain, request_id)
    except DomainConflictError:
        raise HTTPException(status_code=409, detail="This domain is already taken")

    try:
        ack = await client.setup_domain(
            domain, tenant_id, settings.webhook_callback_url, request_id=request_id
        )
    except DomainSetupUnavailable as e:
        DOMAIN_SETUP_REQUESTS.labels(outcome="unavailable").inc()
        await run_in_threadpool(directory.abort_pending, tenant_id, request_id, str(e))
        return JSONResponse(
            status_code=503,
            content={
                "error": "Unable to reach setup server. Please try again in a few moments.",
                "status": "queued",
            },
        )
    except DomainSetupRejected as e:
        DOMAIN_SETUP_REQUESTS.labels(outcome="rejected").inc()
        await run_in_threadpool(directory.abort_pending, tenant_id, request_id, str(e))
        raise HTTPException(status_code=400, detail=str(e))

    DOMAIN_SETUP_REQUESTS.labels(outcome="accepted").inc()
    logger.info("Provisioning requested for %s (tenant %s, request %s)", domain, current_tenant.username, request_id)
    return ack.to_dict()


@router.get("/status")
async def custom_domain_status(
    current_tenant: Tenant = Depends(deps.get_current_tenant),
    client: DomainSetupClient = Depends(deps.get_domain_setup_client),
) -> Any:
    """Local state plus a best-effort poll of the setup service."""
    if not current_tenant.custom_domain:
        raise HTTPException(status_code=404, detail="No custom domain configured")

    result = {
        "domain": current_tenant.custom_domain,
        "status": current_tenant.custom_domain_status,
        "remote": None,
    }
    try:
        result["remote"] = await client.check_status(current_tenant.custom_domain)
    except DomainSetupUnavailable:
        raise HTTPException(
            status_code=503, detail="Unable to reach setup server. Please try again in a few moments."
        )
    except DomainSetupRejected as e:
        logger.info("Status poll failed for %s: %s", current_tenant.custom_domain, e)
    return result
