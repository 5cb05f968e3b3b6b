"""
Domain setup service client.

Asks the remote provisioning service (reverse proxy + TLS certificate host)
to configure a custom domain. The call returns as soon as the service has
accepted the job (202 / "pending"); completion is reported later through the
signed webhook handled in app.services.domain_webhook.

Failures come in two flavours:
  - DomainSetupUnavailable: the service could not be reached (connection
    refused, DNS failure, timeout). Retryable, show "try again shortly".
  - DomainSetupRejected: the service answered with a non-2xx status.
    Terminal, carries the remote error message when there is one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.models.tenant import TenantId
from app.services.signature import SIGNATURE_HEADER, canonical_json, create_signature

logger = logging.getLogger("linkhost.domain_setup")


class DomainSetupError(Exception):
    pass


class DomainSetupUnavailable(DomainSetupError):
    """Provisioning service unreachable; safe to retry later."""


class DomainSetupRejected(DomainSetupError):
    """Provisioning service refused the request."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ProvisioningAck:
    status: str
    domain: str
    message: str = ""
    error: Optional[str] = None
    timestamp: Optional[str] = None
    request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "status": self.status,
            "domain": self.domain,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.error:
            data["error"] = self.error
        return data


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


class DomainSetupClient:
    def __init__(
        self,
        server_url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: Optional[float] = None,
        verify: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = 2,
        backoff: float = 1.0,
    ):
        self.server_url = (server_url or settings.DOMAIN_SETUP_SERVER_URL).rstrip("/")
        self.secret = secret if secret is not None else settings.DOMAIN_SETUP_SECRET
        self.timeout = timeout if timeout is not None else settings.DOMAIN_SETUP_TIMEOUT
        self.verify = verify if verify is not None else settings.DOMAIN_SETUP_VERIFY_TLS
        self.transport = transport
        self.max_attempts = max_attempts
        self.backoff = backoff

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            verify=self.verify,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, retrying only when the connection itself failed."""
        url = f"{self.server_url}{path}"
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.backoff, max=10),
                retry=retry_if_exception_type(httpx.ConnectError),
                reraise=True,
            ):
                with attempt:
                    async with self._client() as client:
                        return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Domain setup service timed out: %s %s", method, url)
            raise DomainSetupUnavailable("Domain setup service timed out") from e
        except httpx.TransportError as e:
            logger.warning("Domain setup service unreachable: %s %s (%s)", method, url, e)
            raise DomainSetupUnavailable("Unable to reach domain setup service") from e

    async def setup_domain(
        self,
        domain: str,
        tenant_id: TenantId,
        webhook_url: str,
        request_id: Optional[str] = None,
    ) -> ProvisioningAck:
        payload: Dict[str, Any] = {
            "domain": domain,
            "userId": tenant_id.value,
            "webhookUrl": webhook_url,
        }
        if request_id:
            payload["requestId"] = request_id
        body = canonical_json(payload)

        response = await self._request(
            "POST",
            "/api/domains/setup",
            content=body,
            headers={
                "Content-Type": "application/json",
                SIGNATURE_HEADER: create_signature(self.secret, body),
            },
        )

        if not response.is_success:
            message = _error_message(response, "Domain setup failed")
            logger.warning(
                "Domain setup rejected for %s: %d %s", domain, response.status_code, message
            )
            raise DomainSetupRejected(message, response.status_code)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        logger.info("Domain setup accepted for %s (%s)", domain, data.get("status", "pending"))
        return ProvisioningAck(
            status=str(data.get("status") or "pending"),
            domain=str(data.get("domain") or domain),
            message=str(data.get("message") or ""),
            error=data.get("error"),
            timestamp=data.get("timestamp") or datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
        )

    async def check_status(self, domain: str) -> Dict[str, Any]:
        """Best-effort status poll. Not authoritative, the webhook is."""
        response = await self._request("GET", f"/api/domains/{quote(domain, safe='')}/status")
        if not response.is_success:
            raise DomainSetupRejected(
                _error_message(response, "Failed to check domain status"), response.status_code
            )
        try:
            data = response.json()
        except ValueError:
            raise DomainSetupRejected("Invalid status response", response.status_code)
        return data if isinstance(data, dict) else {"status": data}

    async def health(self) -> Dict[str, Any]:
        try:
            response = await self._request("GET", "/health")
        except DomainSetupUnavailable as e:
            return {"status": "unhealthy", "error": str(e)}
        if not response.is_success:
            return {"status": "unhealthy", "error": f"HTTP {response.status_code}"}
        try:
            return {"status": "healthy", "data": response.json()}
        except ValueError:
            return {"status": "healthy", "data": None}
