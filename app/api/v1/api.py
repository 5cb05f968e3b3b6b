from fastapi import APIRouter

from app.api.v1.endpoints import custom_domains, internal, webhooks

api_router = APIRouter()
api_router.include_router(custom_domains.router, prefix="/custom-domain", tags=["custom-domain"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(internal.router, prefix="/internal", tags=["internal"])
