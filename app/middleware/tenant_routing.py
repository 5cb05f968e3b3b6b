"""
Tenant Routing Middleware

Resolves the tenant for every inbound request from its Host header and
applies the routing decision:
  - REWRITE       request path replaced with the tenant-scoped path
  - REDIRECT      307 to the canonical URL
  - PASS_THROUGH  request served unchanged
  - NOT_FOUND     404

Sets request.state.resolved_tenant (username or None) and
request.state.host_descriptor for downstream handlers. Never fails a
request because the tenant directory is unavailable.
"""

import logging
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from app.config import RoutingConfig, settings
from app.logging_config import host_ctx, tenant_ctx
from app.middleware.metrics import DOMAIN_LOOKUP_DURATION, ROUTING_DECISIONS
from app.middleware.proxy_headers import get_effective_host, parse_networks
from app.services import hostname
from app.services.routing import RoutingAction, RoutingEngine
from app.services.tenant_directory import TenantDirectory, tenant_directory

logger = logging.getLogger("linkhost.routing")


class TenantRoutingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        config: Optional[RoutingConfig] = None,
        directory: Optional[TenantDirectory] = None,
        trusted_proxies: Optional[str] = None,
    ):
        super().__init__(app)
        self.config = config or RoutingConfig.from_settings(settings)
        self.engine = RoutingEngine(self.config, directory or tenant_directory)
        self.trusted_proxies = parse_networks(
            trusted_proxies if trusted_proxies is not None else settings.TRUSTED_PROXY_IPS
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        host = get_effective_host(request, self.trusted_proxies)
        path = request.url.path
        request_url = f"{request.url.scheme}://{host}{path}"

        descriptor = hostname.parse(host, request_url, self.config)

        start = time.perf_counter()
        decision = await self.engine.decide(descriptor, path)
        if descriptor.kind == hostname.HostKind.UNKNOWN:
            DOMAIN_LOOKUP_DURATION.observe(time.perf_counter() - start)
        ROUTING_DECISIONS.labels(action=decision.action.value, kind=descriptor.kind.value).inc()

        host_ctx.set(descriptor.raw_host or "-")
        request.state.host_descriptor = descriptor
        request.state.resolved_tenant = decision.tenant
        if decision.tenant:
            tenant_ctx.set(decision.tenant)

        if decision.action == RoutingAction.REDIRECT:
            logger.debug("Redirect %s%s -> %s", descriptor.raw_host, path, decision.target_url)
            return RedirectResponse(decision.target_url, status_code=307)

        if decision.action == RoutingAction.NOT_FOUND:
            logger.info("No tenant for host %s", descriptor.raw_host)
            return JSONResponse(status_code=404, content={"detail": "Not found"})

        if decision.action == RoutingAction.REWRITE:
            logger.debug("Rewrite %s%s -> %s", descriptor.raw_host, path, decision.target_path)
            request.scope["path"] = decision.target_path
            request.scope["raw_path"] = decision.target_path.encode("utf-8")

        return await call_next(request)
