"""Database helpers for psycopg connections."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

import psycopg

from .config import ConfigurationError, get_settings

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "schema.sql"


def connect(database_url: str | None = None) -> psycopg.Connection:
    """Open a connection to ``database_url`` or the configured ``DATABASE_URL``."""

    url = database_url or get_settings().database_url
    if not url:
        raise ConfigurationError("DATABASE_URL not configured")
    return psycopg.connect(url)


def ensure_schema(conn: psycopg.Connection, schema_sql_path: Path = SCHEMA_PATH) -> None:
    """Create the service tables if they are missing.

    The schema relies on ``IF NOT EXISTS`` clauses so it can be applied
    repeatedly without touching existing data.
    """

    with conn.cursor() as cur:
        cur.execute(schema_sql_path.read_text(encoding="utf-8"))
    conn.commit()
    logger.info("schema ensured from %s", schema_sql_path)


def coerce_tenant_id(tenant_id: str | UUID | None) -> UUID:
    """Return ``tenant_id`` as a :class:`UUID` or raise ``RuntimeError``."""

    if tenant_id is None:
        raise RuntimeError("Tenant context missing")
    if isinstance(tenant_id, UUID):
        return tenant_id
    try:
        return UUID(str(tenant_id))
    except ValueError as exc:
        raise RuntimeError("Invalid tenant identifier") from exc
