"""Log masking and ops script helpers."""
import json
import logging

from app.logging_config import JSONFormatter, mask_pii, request_id_ctx, tenant_ctx
from scripts.generate_secrets import generate_secrets, patch_env


def test_mask_pii_hides_email_signature_and_bearer():
    text = mask_pii(
        'webhook for alice@example.org x-signature="' + "ab" * 32 + '" Authorization: Bearer eyJhbGciOi.x.y'
    )
    assert "alice@example.org" not in text
    assert "a***e@example.org" in text
    assert "ab" * 32 not in text
    assert "eyJhbGciOi" not in text


def test_json_formatter_includes_context_and_extras():
    record = logging.LogRecord("linkhost.routing", logging.INFO, __file__, 1, "Rewrite %s", ("/x",), None)
    record.duration_ms = 12.5
    rid_token = request_id_ctx.set("abc12345")
    tenant_token = tenant_ctx.set("alice")
    try:
        entry = json.loads(JSONFormatter().format(record))
    finally:
        request_id_ctx.reset(rid_token)
        tenant_ctx.reset(tenant_token)
    assert entry["message"] == "Rewrite /x"
    assert entry["request_id"] == "abc12345"
    assert entry["tenant"] == "alice"
    assert entry["duration_ms"] == 12.5
    assert "host" not in entry
    assert "lineno" not in entry


def test_patch_env_fills_only_empty_keys():
    content = "SECRET_KEY=\nDOMAIN_SETUP_SECRET=keep-me\nPOSTGRES_PASSWORD=  # set me\n"
    generated = generate_secrets()
    patched, count = patch_env(content, generated)
    assert count == 2
    assert f"SECRET_KEY={generated['SECRET_KEY']}" in patched
    assert "DOMAIN_SETUP_SECRET=keep-me" in patched
    assert f"POSTGRES_PASSWORD={generated['POSTGRES_PASSWORD']}" in patched
    assert len(generated["DOMAIN_SETUP_SECRET"]) == 64


def test_create_tables_is_idempotent(db):
    from scripts.create_tables import create_tables

    # the db fixture already created the schema
    assert create_tables() == []
