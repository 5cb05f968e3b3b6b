"""HMAC-SHA256 signing shared by the provisioning client and webhook receiver.

Signatures are hex digests over the exact bytes sent on the wire and are
carried in the ``X-Signature`` header.
"""
import hashlib
import hmac
import json
from typing import Any, Mapping, Union

SIGNATURE_HEADER = "X-Signature"


def canonical_json(payload: Mapping[str, Any]) -> bytes:
    """Compact JSON encoding; the bytes signed are the bytes sent."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _to_bytes(body: Union[bytes, str]) -> bytes:
    return body if isinstance(body, bytes) else body.encode("utf-8")


def create_signature(secret: str, body: Union[bytes, str]) -> str:
    return hmac.new(secret.encode("utf-8"), _to_bytes(body), hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: Union[bytes, str], signature: str) -> bool:
    """Constant-time comparison against the expected signature."""
    if not signature or not secret:
        return False
    expected = create_signature(secret, body)
    return hmac.compare_digest(
        expected.encode("ascii"), signature.strip().lower().encode("utf-8")
    )
