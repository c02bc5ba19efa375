"""Pydantic schemas for conversation APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from .models import ConversationRecord


class ConversationSummary(BaseModel):
    id: UUID | None = None
    tenant_id: UUID
    customer_phone: str
    slug: str | None = None
    current_node: str | None = None
    answers: dict[str, Any] = Field(default_factory=dict)
    handoff_to_human: bool = False
    last_inbound_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ConversationRecord) -> "ConversationSummary":
        return cls(
            id=record.id,
            tenant_id=record.tenant_id,
            customer_phone=record.customer_phone,
            slug=record.slug,
            current_node=record.current_node,
            answers=record.answers,
            handoff_to_human=record.handoff_to_human,
            last_inbound_at=record.last_inbound_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int
    has_more: bool


class ConversationList(BaseModel):
    items: list[ConversationSummary]
    pagination: Pagination
