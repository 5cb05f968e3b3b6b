import warnings
from dataclasses import dataclass
from typing import Tuple

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Known insecure default keys (must never be used in production) ──
_INSECURE_KEYS = {
    "change_this",
    "change-this-secret",
    "change-this-secret-in-production",
    "your-secret-key-change-in-production",
    "secret",
}


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


class Settings(BaseSettings):
    APP_NAME: str = "Linkhost Routing"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change_this"
    ALGORITHM: str = "HS256"

    # Database (tenant store)
    DATABASE_URL: str = ""  # overrides POSTGRES_* when set (e.g. sqlite for tests)
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "linkhost"

    # Platform hosts
    PLATFORM_APEX_DOMAIN: str = "pholio.link"
    PLATFORM_CANONICAL_URL: str = ""        # default: https://www.<apex>
    PREVIEW_HOST_SUFFIX: str = ".vercel.app"
    RESERVED_HOSTS: str = "pholio.vercel.app"

    # Path sets used by the routing engine
    AUTH_PATHS: str = "/login,/register,/signup"
    TENANT_OWNED_PATHS: str = "/profile,/links,/gallery"
    ROUTING_BYPASS_PREFIXES: str = "/api,/_next,/static,/images,/health,/metrics,/docs,/openapi.json,/favicon.ico"

    # Forwarded headers are honoured only from these hops
    TRUSTED_PROXY_IPS: str = "127.0.0.1,::1"

    # Custom domain lookups on the request path
    DOMAIN_LOOKUP_TIMEOUT: float = 2.0      # seconds
    DOMAIN_CACHE_TTL: int = 60 * 60         # 1 hour, applies to misses as well
    DOMAIN_CACHE_MAX_ENTRIES: int = 10_000  # hits + misses, oldest evicted first

    # Domain provisioning service
    DOMAIN_SETUP_SERVER_URL: str = "https://localhost:3001"
    DOMAIN_SETUP_SECRET: str = "change-this-secret"
    DOMAIN_SETUP_TIMEOUT: float = 10.0
    DOMAIN_SETUP_VERIFY_TLS: bool = True
    DOMAIN_BLACKLIST: str = ""              # extra comma-separated patterns, "*" wildcards allowed
    APP_BASE_URL: str = ""                  # webhook callbacks go to <APP_BASE_URL><API_V1_STR>/webhooks/domain-setup
    SERVER_IP: str = "65.21.227.202"        # target of the customer's DNS A record
    CUSTOM_DOMAIN_PLANS: str = "paid"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Block startup if shared secrets are insecure in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            if self.SECRET_KEY in _INSECURE_KEYS or len(self.SECRET_KEY) < 32:
                raise ValueError(
                    f"SECRET_KEY is insecure ('{self.SECRET_KEY[:8]}…'). "
                    "Set a strong random key (≥ 32 chars) in .env or environment."
                )
            if self.DOMAIN_SETUP_SECRET in _INSECURE_KEYS or len(self.DOMAIN_SETUP_SECRET) < 32:
                raise ValueError(
                    "DOMAIN_SETUP_SECRET is insecure. It signs every provisioning "
                    "request and webhook; set a random value (≥ 32 chars) shared "
                    "with the domain setup service."
                )
            if self.POSTGRES_PASSWORD in ("postgres", "") and not self.DATABASE_URL:
                warnings.warn(
                    "POSTGRES_PASSWORD is set to default 'postgres'.",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def canonical_url(self) -> str:
        url = self.PLATFORM_CANONICAL_URL or f"https://www.{self.PLATFORM_APEX_DOMAIN}"
        return url.rstrip("/")

    @property
    def webhook_callback_url(self) -> str:
        base = (self.APP_BASE_URL or self.canonical_url).rstrip("/")
        return f"{base}{self.API_V1_STR}/webhooks/domain-setup"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"


@dataclass(frozen=True)
class RoutingConfig:
    """Process-wide routing configuration, built once and injected.

    The hostname parser and the routing engine only ever see this object,
    never the environment.
    """

    apex_domain: str = "pholio.link"
    canonical_url: str = "https://www.pholio.link"
    preview_suffix: str = ".vercel.app"
    reserved_hosts: Tuple[str, ...] = ()
    auth_paths: Tuple[str, ...] = ("/login", "/register", "/signup")
    tenant_owned_paths: Tuple[str, ...] = ("/profile", "/links", "/gallery")
    bypass_prefixes: Tuple[str, ...] = ("/api", "/_next", "/static")
    lookup_timeout: float = 2.0

    @classmethod
    def from_settings(cls, s: Settings) -> "RoutingConfig":
        suffix = s.PREVIEW_HOST_SUFFIX.lower()
        if suffix and not suffix.startswith("."):
            suffix = "." + suffix
        return cls(
            apex_domain=s.PLATFORM_APEX_DOMAIN.lower().strip("."),
            canonical_url=s.canonical_url,
            preview_suffix=suffix,
            reserved_hosts=tuple(h.lower() for h in _split_csv(s.RESERVED_HOSTS)),
            auth_paths=_split_csv(s.AUTH_PATHS),
            tenant_owned_paths=_split_csv(s.TENANT_OWNED_PATHS),
            bypass_prefixes=_split_csv(s.ROUTING_BYPASS_PREFIXES),
            lookup_timeout=s.DOMAIN_LOOKUP_TIMEOUT,
        )


settings = Settings()
