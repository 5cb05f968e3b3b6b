"""
Domain setup webhook receiver.

The provisioning service reports completion by POSTing a JSON body signed
with the shared secret (X-Signature, hex HMAC-SHA256 over the raw body).
The signature is the only thing protecting tenant domain state from forged
updates, so nothing in the body is parsed before it has been verified.

Outcomes:
  - invalid / missing signature     -> 401, body ignored
  - verified, malformed payload     -> 400
  - status "pending"                -> 200, informational only
  - unknown tenant                  -> 200, logged (the sender must not retry)
  - requestId of a superseded setup -> 200, ignored
  - status "active" / "failed"      -> 200, one atomic update of the tenant row
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.config import settings
from app.crud.crud_tenant import DomainConflictError
from app.middleware.metrics import WEBHOOK_EVENTS
from app.models.tenant import DomainStatus, TenantId
from app.schemas.custom_domain import DomainSetupCallback
from app.services.signature import verify_signature
from app.services.tenant_directory import TenantDirectory

logger = logging.getLogger("linkhost.webhook")


class CallbackOutcome(str, enum.Enum):
    APPLIED = "applied"
    INFORMATIONAL = "informational"
    UNKNOWN_TENANT = "unknown_tenant"
    STALE = "stale"
    CONFLICT = "conflict"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_PAYLOAD = "invalid_payload"


@dataclass
class CallbackResult:
    outcome: CallbackOutcome
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status_code == 200


def _ack(outcome: CallbackOutcome) -> CallbackResult:
    return CallbackResult(outcome, 200, {"received": True})


class DomainWebhookReceiver:
    def __init__(self, directory: TenantDirectory, secret: Optional[str] = None):
        self.directory = directory
        self.secret = secret if secret is not None else settings.DOMAIN_SETUP_SECRET

    def handle_callback(self, raw_body: bytes, signature_header: Optional[str]) -> CallbackResult:
        result = self._handle(raw_body, signature_header)
        WEBHOOK_EVENTS.labels(outcome=result.outcome.value).inc()
        return result

    def _handle(self, raw_body: bytes, signature_header: Optional[str]) -> CallbackResult:
        if not signature_header:
            logger.warning("Domain setup webhook without signature")
            return CallbackResult(CallbackOutcome.INVALID_SIGNATURE, 401, {"error": "Missing signature"})

        if not verify_signature(self.secret, raw_body, signature_header):
            logger.warning("Invalid signature on domain setup webhook")
            return CallbackResult(CallbackOutcome.INVALID_SIGNATURE, 401, {"error": "Invalid signature"})

        try:
            payload = DomainSetupCallback.model_validate(json.loads(raw_body))
        except (ValueError, ValidationError) as e:
            logger.warning("Malformed domain setup webhook payload: %s", e)
            return CallbackResult(CallbackOutcome.INVALID_PAYLOAD, 400, {"error": "Invalid payload"})

        tenant_id = TenantId.from_wire(payload.user_id)
        domain = payload.domain.strip().lower()

        if payload.status == DomainStatus.PENDING.value:
            logger.info("[%s] Setup in progress for %s: %s", domain, tenant_id, payload.message or "-")
            return _ack(CallbackOutcome.INFORMATIONAL)

        exists, _, current_request_id = self.directory.get_request_id(tenant_id)
        if not exists:
            logger.warning("Domain setup webhook for unknown tenant %s (%s)", tenant_id, domain)
            return _ack(CallbackOutcome.UNKNOWN_TENANT)

        if payload.request_id and payload.request_id != current_request_id:
            logger.info(
                "[%s] Ignoring callback for superseded setup request %s (tenant %s)",
                domain, payload.request_id, tenant_id,
            )
            return _ack(CallbackOutcome.STALE)

        status = DomainStatus(payload.status)
        try:
            matched = self.directory.apply_domain_status(
                tenant_id,
                domain=domain,
                status=status,
                message=payload.message,
                error=payload.error,
                request_id=payload.request_id,
            )
        except DomainConflictError:
            logger.warning(
                "[%s] Callback for tenant %s but the domain belongs to another tenant", domain, tenant_id
            )
            return _ack(CallbackOutcome.CONFLICT)

        if not matched:
            if payload.request_id:
                # removed or re-provisioned since the token was checked
                logger.info(
                    "[%s] Setup request %s superseded before apply (tenant %s)",
                    domain, payload.request_id, tenant_id,
                )
                return _ack(CallbackOutcome.STALE)
            logger.warning("Domain setup webhook for unknown tenant %s (%s)", tenant_id, domain)
            return _ack(CallbackOutcome.UNKNOWN_TENANT)

        logger.info(
            "[%s] Setup %s for tenant %s",
            domain, "completed" if status == DomainStatus.ACTIVE else "failed", tenant_id,
        )
        return _ack(CallbackOutcome.APPLIED)
