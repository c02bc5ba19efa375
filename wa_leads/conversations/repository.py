"""Persistence for conversation progress and inbound message dedupe."""
from __future__ import annotations

import dataclasses
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID, uuid4

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from ..core.db import coerce_tenant_id
from .models import ConversationRecord

_CONVERSATION_COLUMNS = (
    "id, tenant_id, customer_phone, current_node, answers, slug, handoff_to_human, "
    "last_inbound_at, created_at, updated_at"
)


class DuplicateMessageError(RuntimeError):
    """Raised when an inbound message id has already been recorded."""


class ConversationRepository(Protocol):
    """Tenant-scoped storage used by :class:`LeadConversationService`."""

    @property
    def tenant_id(self) -> UUID: ...

    def get_conversation(self, customer_phone: str) -> Optional[ConversationRecord]: ...

    def get_conversation_by_slug(self, slug: str) -> Optional[ConversationRecord]: ...

    def upsert_conversation(
        self,
        customer_phone: str,
        *,
        current_node: str,
        answers: Dict[str, str],
        slug: Optional[str],
        last_inbound_at: datetime,
    ) -> ConversationRecord: ...

    def set_handoff(self, customer_phone: str, handoff_to_human: bool) -> None: ...

    def is_slug_taken(self, slug: str, customer_phone: str) -> bool: ...

    def is_duplicate_message(self, message_id: str) -> bool: ...

    def mark_message_processed(self, message_id: str) -> None: ...

    def list_conversations(self, limit: int = 25, offset: int = 0) -> List[ConversationRecord]: ...

    def count_conversations(self) -> int: ...


def _hydrate(row: Dict[str, Any]) -> ConversationRecord:
    return ConversationRecord(
        id=row.get("id"),
        tenant_id=row["tenant_id"],
        customer_phone=row["customer_phone"],
        current_node=row.get("current_node"),
        answers=dict(row.get("answers") or {}),
        slug=row.get("slug"),
        handoff_to_human=bool(row.get("handoff_to_human")),
        last_inbound_at=row.get("last_inbound_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class PostgresConversationRepository:
    """PostgreSQL implementation of :class:`ConversationRepository`."""

    def __init__(self, conn: psycopg.Connection, tenant_id: UUID | str) -> None:
        self._conn = conn
        self._tenant_id = coerce_tenant_id(tenant_id)

    # Utility -----------------------------------------------------------------
    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    @property
    def tenant_id(self) -> UUID:
        return self._tenant_id

    # Conversation operations --------------------------------------------------
    def get_conversation(self, customer_phone: str) -> Optional[ConversationRecord]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS} FROM conversations
                WHERE tenant_id = %s AND customer_phone = %s
                """,
                (self._tenant_id, customer_phone),
            )
            row = cur.fetchone()
        return _hydrate(row) if row else None

    def get_conversation_by_slug(self, slug: str) -> Optional[ConversationRecord]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS} FROM conversations
                WHERE tenant_id = %s AND slug = %s
                """,
                (self._tenant_id, slug),
            )
            row = cur.fetchone()
        return _hydrate(row) if row else None

    def upsert_conversation(
        self,
        customer_phone: str,
        *,
        current_node: str,
        answers: Dict[str, str],
        slug: Optional[str],
        last_inbound_at: datetime,
    ) -> ConversationRecord:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO conversations
                    (tenant_id, customer_phone, current_node, answers, slug, last_inbound_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (tenant_id, customer_phone) DO UPDATE
                SET current_node = EXCLUDED.current_node,
                    answers = EXCLUDED.answers,
                    slug = EXCLUDED.slug,
                    last_inbound_at = EXCLUDED.last_inbound_at,
                    updated_at = now()
                RETURNING {_CONVERSATION_COLUMNS}
                """,
                (
                    self._tenant_id,
                    customer_phone,
                    current_node,
                    Jsonb(answers),
                    slug,
                    last_inbound_at,
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise RuntimeError("upsert_conversation failed: missing data")
        return _hydrate(row)

    def set_handoff(self, customer_phone: str, handoff_to_human: bool) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE conversations
                SET handoff_to_human = %s, updated_at = now()
                WHERE tenant_id = %s AND customer_phone = %s
                """,
                (handoff_to_human, self._tenant_id, customer_phone),
            )

    def is_slug_taken(self, slug: str, customer_phone: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT customer_phone FROM conversations
                WHERE tenant_id = %s AND slug = %s
                """,
                (self._tenant_id, slug),
            )
            row = cur.fetchone()
        return bool(row) and row["customer_phone"] != customer_phone

    def list_conversations(self, limit: int = 25, offset: int = 0) -> List[ConversationRecord]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS} FROM conversations
                WHERE tenant_id = %s
                ORDER BY updated_at DESC
                LIMIT %s OFFSET %s
                """,
                (self._tenant_id, limit, offset),
            )
            rows = cur.fetchall()
        return [_hydrate(row) for row in rows]

    def count_conversations(self) -> int:
        with self._cursor() as cur:
            cur.execute(
                "SELECT count(*) AS total FROM conversations WHERE tenant_id = %s",
                (self._tenant_id,),
            )
            row = cur.fetchone()
        return int(row["total"]) if row else 0

    # Dedupe -------------------------------------------------------------------
    def is_duplicate_message(self, message_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "SELECT message_id FROM wa_inbound_dedupe WHERE message_id = %s",
                (message_id,),
            )
            return cur.fetchone() is not None

    def mark_message_processed(self, message_id: str) -> None:
        try:
            with self._conn.transaction(), self._cursor() as cur:
                cur.execute(
                    "INSERT INTO wa_inbound_dedupe (message_id, tenant_id) VALUES (%s, %s)",
                    (message_id, self._tenant_id),
                )
        except psycopg.errors.UniqueViolation as exc:
            raise DuplicateMessageError(message_id) from exc


def _copy(record: ConversationRecord) -> ConversationRecord:
    return dataclasses.replace(record, answers=dict(record.answers))


class InMemoryConversationRepository:
    """Process-local repository used in tests and local development.

    State lives in the ``store`` mapping so several tenant-scoped instances can
    share one backing store, mirroring the tables of the PostgreSQL schema.
    """

    def __init__(
        self,
        tenant_id: UUID | str,
        store: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._tenant_id = coerce_tenant_id(tenant_id)
        self._store = store if store is not None else {}
        self._conversations: Dict[tuple[UUID, str], ConversationRecord] = (
            self._store.setdefault("conversations", {})
        )
        self._dedupe: Dict[str, UUID] = self._store.setdefault("dedupe", {})
        self._lock = self._store.setdefault("lock", threading.Lock())

    @property
    def tenant_id(self) -> UUID:
        return self._tenant_id

    def _owned(self) -> List[ConversationRecord]:
        return [
            record
            for (tenant, _), record in self._conversations.items()
            if tenant == self._tenant_id
        ]

    def get_conversation(self, customer_phone: str) -> Optional[ConversationRecord]:
        record = self._conversations.get((self._tenant_id, customer_phone))
        return _copy(record) if record else None

    def get_conversation_by_slug(self, slug: str) -> Optional[ConversationRecord]:
        for record in self._owned():
            if record.slug == slug:
                return _copy(record)
        return None

    def upsert_conversation(
        self,
        customer_phone: str,
        *,
        current_node: str,
        answers: Dict[str, str],
        slug: Optional[str],
        last_inbound_at: datetime,
    ) -> ConversationRecord:
        now = datetime.now(timezone.utc)
        key = (self._tenant_id, customer_phone)
        with self._lock:
            record = self._conversations.get(key)
            if record is None:
                record = ConversationRecord(
                    id=uuid4(),
                    tenant_id=self._tenant_id,
                    customer_phone=customer_phone,
                    created_at=now,
                )
                self._conversations[key] = record
            record.current_node = current_node
            record.answers = dict(answers)
            record.slug = slug
            record.last_inbound_at = last_inbound_at
            record.updated_at = now
            return _copy(record)

    def set_handoff(self, customer_phone: str, handoff_to_human: bool) -> None:
        record = self._conversations.get((self._tenant_id, customer_phone))
        if record is not None:
            record.handoff_to_human = handoff_to_human
            record.updated_at = datetime.now(timezone.utc)

    def is_slug_taken(self, slug: str, customer_phone: str) -> bool:
        return any(
            record.slug == slug and record.customer_phone != customer_phone
            for record in self._owned()
        )

    def list_conversations(self, limit: int = 25, offset: int = 0) -> List[ConversationRecord]:
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        records = sorted(
            self._owned(), key=lambda r: r.updated_at or epoch, reverse=True
        )
        return [_copy(r) for r in records[offset : offset + limit]]

    def count_conversations(self) -> int:
        return len(self._owned())

    def is_duplicate_message(self, message_id: str) -> bool:
        return message_id in self._dedupe

    def mark_message_processed(self, message_id: str) -> None:
        with self._lock:
            if message_id in self._dedupe:
                raise DuplicateMessageError(message_id)
            self._dedupe[message_id] = self._tenant_id
