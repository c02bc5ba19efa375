"""Domain models used by the conversation service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import UUID

from ..bot.engine import EngineResult, InboundMessage


@dataclass
class NormalizedMessage:
    """Uniform representation of one inbound WhatsApp message."""

    phone_number_id: str
    message_id: str
    sender_id: str
    message: InboundMessage
    sender_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: UUID | None = None


@dataclass
class ConversationRecord:
    """Persisted progress of one customer through a tenant's tree."""

    tenant_id: UUID
    customer_phone: str
    current_node: str | None = None
    answers: dict[str, Any] = field(default_factory=dict)
    slug: str | None = None
    handoff_to_human: bool = False
    last_inbound_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: UUID | None = None

    def string_answers(self) -> dict[str, str]:
        """Stored answers restricted to string values, as the engine expects."""

        return {k: v for k, v in (self.answers or {}).items() if isinstance(v, str)}


OutcomeStatus = Literal["processed", "duplicate", "handoff"]


@dataclass
class ProcessOutcome:
    status: OutcomeStatus
    conversation: ConversationRecord | None = None
    result: EngineResult | None = None
