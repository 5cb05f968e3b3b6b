from fastapi import Depends, FastAPI

from app.api import deps
from app.api.v1.api import api_router
from app.config import settings
from app.logging_config import setup_logging
from app.middleware.metrics import PrometheusMiddleware, metrics_endpoint, set_app_info
from app.middleware.request_logging import RequestLoggingMiddleware
from app.middleware.tenant_routing import TenantRoutingMiddleware
from app.services.domain_setup_client import DomainSetupClient

# ── Initialize structured logging ──
setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)

# Middleware added last runs first: logging -> metrics -> tenant routing -> app

# Tenant routing – resolves tenant from Host, rewrites / redirects
app.add_middleware(TenantRoutingMiddleware)

# Prometheus metrics – request count, latency, in-progress
app.add_middleware(PrometheusMiddleware)

# Request logging – request ID, timing
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check(
    deep: bool = False,
    client: DomainSetupClient = Depends(deps.get_domain_setup_client),
):
    result = {"status": "ok", "env": settings.APP_ENV}
    if deep:
        result["domain_setup"] = await client.health()
    return result


app.add_route("/metrics", metrics_endpoint)
set_app_info(version="1.0.0", env=settings.APP_ENV)
