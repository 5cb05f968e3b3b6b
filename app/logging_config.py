"""
Structured Logging Configuration

Features:
  - JSON logs in production / staging, readable lines in development
  - Per-request context: request id, effective host, resolved tenant
  - Structured ``extra=`` fields (durations, statements) carried into JSON
  - Masking of emails, shared secrets, signatures and bearer tokens
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Any

from app.config import settings

# ── Per-request context ──
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
host_ctx: ContextVar[str] = ContextVar("host", default="-")
tenant_ctx: ContextVar[str] = ContextVar("tenant", default="-")


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


def reset_request_context(request_id: str) -> None:
    request_id_ctx.set(request_id)
    host_ctx.set("-")
    tenant_ctx.set("-")


# ═══════════════════════════════════════════
#  Masking
# ═══════════════════════════════════════════

_EMAIL_PATTERN = re.compile(r'([a-zA-Z0-9._%+-]+)@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})')

_REDACT_PATTERNS = [
    (re.compile(r'("?(?:secret|token)"?\s*[:=]\s*)"[^"]*"', re.I), r'\1"***"'),
    (re.compile(r'("?x-signature"?\s*[:=]\s*)"?[0-9a-f]{16,}"?', re.I), r'\1"***"'),
    (re.compile(r'(bearer\s+)[A-Za-z0-9._~+/=-]+', re.I), r'\1***'),
]

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "request_id",
}


def _mask_email(match: re.Match) -> str:
    local, domain = match.group(1), match.group(2)
    if len(local) <= 2:
        return f"{local[0]}***@{domain}"
    return f"{local[0]}***{local[-1]}@{domain}"


def mask_pii(text: str) -> str:
    for pattern, replacement in _REDACT_PATTERNS:
        text = pattern.sub(replacement, text)
    return _EMAIL_PATTERN.sub(_mask_email, text)


# ═══════════════════════════════════════════
#  Formatters
# ═══════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """One JSON object per line for log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S.000Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_pii(record.getMessage()),
            "request_id": request_id_ctx.get(),
            "host": host_ctx.get(),
            "tenant": tenant_ctx.get(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key not in entry:
                entry[key] = value

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        entry = {k: v for k, v in entry.items() if v is not None and v != "-"}
        return json.dumps(entry, ensure_ascii=False, default=str)


class HumanFormatter(logging.Formatter):
    FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-22s | [%(request_id)s %(tenant)s] %(message)s"

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = request_id_ctx.get()
        record.tenant = tenant_ctx.get()
        return super().format(record)


# ═══════════════════════════════════════════
#  Setup
# ═══════════════════════════════════════════

def setup_logging() -> None:
    root = logging.getLogger()
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if settings.is_production or settings.is_staging:
        handler.setFormatter(JSONFormatter())
        root.setLevel(logging.INFO)
    else:
        handler.setFormatter(HumanFormatter(HumanFormatter.FORMAT, datefmt="%H:%M:%S"))
        root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    # Per-request routing decisions are debug noise outside development
    if not settings.is_development:
        logging.getLogger("linkhost.routing").setLevel(logging.INFO)

    for name in ("uvicorn.access", "httpcore", "httpx", "asyncio", "sqlalchemy.engine", "tenacity"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
