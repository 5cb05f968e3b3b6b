"""Pytest configuration and fixtures.

The tenant store runs on a shared in-memory SQLite database; DATABASE_URL
must be set before anything under ``app`` is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DOMAIN_SETUP_SECRET"] = "test-domain-setup-secret"

import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt

from app.config import settings
from app.crud import crud_tenant
from app.db.base_class import Base
from app.db.session import SessionLocal, engine
from app.services.tenant_directory import tenant_directory

# --- Constants ---
PAID_EMAIL = "alice@example.org"
PAID_USERNAME = "alice"
FREE_EMAIL = "bob@example.org"
FREE_USERNAME = "bob"


# --- Per-test fixtures ---

@pytest.fixture(scope="function")
def db():
    """Fresh tables for every test."""
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    tenant_directory.cache.invalidate()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        tenant_directory.cache.invalidate()


@pytest.fixture(scope="function")
async def client(db):
    """Async HTTP client against the full application, on the canonical host."""
    from app.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://www.pholio.link") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def paid_tenant(db):
    return crud_tenant.create(db, email=PAID_EMAIL, username=PAID_USERNAME, subscription_tier="paid")


@pytest.fixture
def free_tenant(db):
    return crud_tenant.create(db, email=FREE_EMAIL, username=FREE_USERNAME, subscription_tier="free")


# --- Helpers ---

def auth_headers(email: str) -> dict:
    """Helper: bearer header for a session token issued to ``email``."""
    token = jwt.encode({"sub": email}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
