"""Lookup of tenant WhatsApp credentials and stored trees."""
from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol
from uuid import UUID

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from ..core.db import coerce_tenant_id
from .models import TenantTreeRecord, TenantWhatsApp

_WHATSAPP_COLUMNS = (
    "tenant_id, phone_number_id, access_token, verify_token, meta_app_secret, "
    "graph_version"
)
_TREE_COLUMNS = "tenant_id, tree, name, version, created_at, updated_at"


class TenantRepository(Protocol):
    def find_by_phone_number_id(self, phone_number_id: str) -> Optional[TenantWhatsApp]: ...

    def find_by_verify_token(self, verify_token: str) -> Optional[TenantWhatsApp]: ...

    def get_tree(self, tenant_id: UUID | str) -> Optional[TenantTreeRecord]: ...

    def upsert_tree(
        self,
        tenant_id: UUID | str,
        tree: Dict[str, Any],
        *,
        name: Optional[str] = None,
        version: Optional[str] = None,
    ) -> TenantTreeRecord: ...


class PostgresTenantRepository:
    """PostgreSQL implementation of :class:`TenantRepository`."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    def find_by_phone_number_id(self, phone_number_id: str) -> Optional[TenantWhatsApp]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_WHATSAPP_COLUMNS} FROM tenant_whatsapp WHERE phone_number_id = %s",
                (phone_number_id,),
            )
            row = cur.fetchone()
        return TenantWhatsApp(**row) if row else None

    def find_by_verify_token(self, verify_token: str) -> Optional[TenantWhatsApp]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_WHATSAPP_COLUMNS} FROM tenant_whatsapp WHERE verify_token = %s",
                (verify_token,),
            )
            row = cur.fetchone()
        return TenantWhatsApp(**row) if row else None

    def get_tree(self, tenant_id: UUID | str) -> Optional[TenantTreeRecord]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_TREE_COLUMNS} FROM tenant_trees WHERE tenant_id = %s",
                (coerce_tenant_id(tenant_id),),
            )
            row = cur.fetchone()
        return TenantTreeRecord(**row) if row else None

    def upsert_tree(
        self,
        tenant_id: UUID | str,
        tree: Dict[str, Any],
        *,
        name: Optional[str] = None,
        version: Optional[str] = None,
    ) -> TenantTreeRecord:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO tenant_trees (tenant_id, tree, name, version)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (tenant_id) DO UPDATE
                SET tree = EXCLUDED.tree,
                    name = EXCLUDED.name,
                    version = EXCLUDED.version,
                    updated_at = now()
                RETURNING {_TREE_COLUMNS}
                """,
                (coerce_tenant_id(tenant_id), Jsonb(tree), name or "default", version),
            )
            row = cur.fetchone()
        if row is None:
            raise RuntimeError("upsert_tree failed: missing data")
        return TenantTreeRecord(**row)


class InMemoryTenantRepository:
    def __init__(self) -> None:
        self._whatsapp: Dict[str, TenantWhatsApp] = {}
        self._trees: Dict[UUID, TenantTreeRecord] = {}

    def add_whatsapp(self, config: TenantWhatsApp) -> TenantWhatsApp:
        self._whatsapp[config.phone_number_id] = config
        return config

    def find_by_phone_number_id(self, phone_number_id: str) -> Optional[TenantWhatsApp]:
        return self._whatsapp.get(phone_number_id)

    def find_by_verify_token(self, verify_token: str) -> Optional[TenantWhatsApp]:
        for config in self._whatsapp.values():
            if config.verify_token and config.verify_token == verify_token:
                return config
        return None

    def get_tree(self, tenant_id: UUID | str) -> Optional[TenantTreeRecord]:
        record = self._trees.get(coerce_tenant_id(tenant_id))
        return copy.deepcopy(record) if record else None

    def upsert_tree(
        self,
        tenant_id: UUID | str,
        tree: Dict[str, Any],
        *,
        name: Optional[str] = None,
        version: Optional[str] = None,
    ) -> TenantTreeRecord:
        key = coerce_tenant_id(tenant_id)
        now = datetime.now(timezone.utc)
        existing = self._trees.get(key)
        record = TenantTreeRecord(
            tenant_id=key,
            tree=copy.deepcopy(tree),
            name=name or "default",
            version=version,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._trees[key] = record
        return copy.deepcopy(record)
