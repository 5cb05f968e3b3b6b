#!/usr/bin/env python3
"""
Bootstrap the tenant store schema (tenants table, unique custom_domain index).

Safe to re-run: existing tables are left untouched.

Usage:
    python scripts/create_tables.py
"""
import logging

from sqlalchemy import inspect

import app.models  # noqa: F401  registers Tenant on Base.metadata
from app.db.base_class import Base
from app.db.session import engine

logger = logging.getLogger("linkhost.scripts")


def create_tables() -> list[str]:
    """Create missing tables and return the names that were added."""
    before = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    created = sorted(set(inspect(engine).get_table_names()) - before)
    logger.info("Tenant store ready on %s (new tables: %s)",
                engine.url.render_as_string(hide_password=True), ", ".join(created) or "none")
    return created


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    create_tables()
