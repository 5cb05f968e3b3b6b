"""Custom domain format and blacklist checks.

Both checks are total: they never raise and always return a result the
caller can turn into a 400 message.
"""
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from app.config import settings

DOMAIN_MIN_LENGTH = 3
DOMAIN_MAX_LENGTH = 253

_DOMAIN_REGEX = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)*[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$",
    re.IGNORECASE,
)

DEFAULT_BLACKLIST = (
    "localhost",
    "example.com",
    "test.com",
)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class BlacklistResult:
    blacklisted: bool
    reason: Optional[str] = None


def validate_format(domain: object) -> ValidationResult:
    if not domain or not isinstance(domain, str):
        return ValidationResult(False, "Domain must be a string")

    if len(domain) < DOMAIN_MIN_LENGTH or len(domain) > DOMAIN_MAX_LENGTH:
        return ValidationResult(
            False,
            f"Domain must be between {DOMAIN_MIN_LENGTH} and {DOMAIN_MAX_LENGTH} characters",
        )

    if not _DOMAIN_REGEX.match(domain):
        return ValidationResult(False, "Invalid domain format")

    return ValidationResult(True)


def _pattern_to_regex(pattern: str) -> re.Pattern:
    # "*" matches any run of characters, everything else is literal
    parts = [re.escape(p) for p in pattern.strip().lower().split("*")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE)


def default_blacklist() -> tuple:
    """Fixed blacklist plus the platform apex and its subdomains."""
    apex = settings.PLATFORM_APEX_DOMAIN.lower()
    configured = tuple(p.strip() for p in settings.DOMAIN_BLACKLIST.split(",") if p.strip())
    return (apex, f"*.{apex}") + DEFAULT_BLACKLIST + configured


def check_blacklist(domain: str, extra: Iterable[str] = ()) -> BlacklistResult:
    if not isinstance(domain, str):
        return BlacklistResult(False)
    lower = domain.strip().lower()
    for pattern in (*default_blacklist(), *extra):
        if not pattern or not pattern.strip():
            continue
        if _pattern_to_regex(pattern).match(lower):
            return BlacklistResult(True, f"Domain matches blacklist pattern: {pattern}")
    return BlacklistResult(False)
