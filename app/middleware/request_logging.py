"""
Request Logging Middleware

- Assigns a unique request_id to every request
- Resets the host / tenant log context (filled in by TenantRoutingMiddleware)
- Logs request start & end with timing
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings
from app.logging_config import generate_request_id, reset_request_context
from app.middleware.proxy_headers import get_client_ip, parse_networks

logger = logging.getLogger("linkhost.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        self.trusted_proxies = parse_networks(settings.TRUSTED_PROXY_IPS)

    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get("x-request-id") or generate_request_id()
        reset_request_context(rid)

        method = request.method
        host = request.headers.get("host", "-")
        path = request.url.path
        client_ip = get_client_ip(request, self.trusted_proxies)

        logger.info("→ %s %s%s from %s", method, host, path, client_ip)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("✗ %s %s%s — %.1fms (unhandled exception)", method, host, path, elapsed)
            raise

        elapsed = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = rid

        logger.info(
            "← %s %s%s — %d — %.1fms",
            method, host, path, response.status_code, elapsed,
        )
        return response
