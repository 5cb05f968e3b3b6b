"""
Domain setup webhook (called by the domain setup service)

POST /webhooks/domain-setup
  Header X-Signature: hex HMAC-SHA256 of the raw body
  Body {"userId", "domain", "status": "active"|"failed"|"pending", "message"?, "error"?}
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.api import deps
from app.services.domain_webhook import DomainWebhookReceiver
from app.services.signature import SIGNATURE_HEADER
from app.services.tenant_directory import TenantDirectory

router = APIRouter()


@router.post("/domain-setup")
async def domain_setup_webhook(
    request: Request,
    directory: TenantDirectory = Depends(deps.get_tenant_directory),
) -> JSONResponse:
    raw_body = await request.body()
    receiver = DomainWebhookReceiver(directory)
    result = await run_in_threadpool(
        receiver.handle_callback, raw_body, request.headers.get(SIGNATURE_HEADER)
    )
    return JSONResponse(status_code=result.status_code, content=result.body)
