"""High-level conversation flow orchestration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from ..bot.engine import ConversationState, process_inbound
from ..channels.transport import MessageTransport, WhatsAppCredentials
from ..core.config import ConfigurationError, Settings, get_settings
from ..core.locks import KeyedLock
from ..tenants.models import TenantWhatsApp
from ..tenants.service import TenantTreeService
from .models import ConversationRecord, NormalizedMessage, ProcessOutcome
from .repository import ConversationRepository, DuplicateMessageError
from .slugs import build_lead_slug, ensure_unique_slug

logger = logging.getLogger(__name__)

# shared by every service instance in the process
_CUSTOMER_LOCKS = KeyedLock()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeadConversationService:
    """Runs one inbound WhatsApp message through a tenant's tree.

    The service owns everything around the pure engine: dedupe, the handoff
    gate, loading state and tree, slug allocation, persistence and dispatch of
    the reply. Work for a given (tenant, customer) pair is serialised so two
    messages racing in from the same customer cannot overwrite each other's
    transition.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        trees: TenantTreeService,
        transport: MessageTransport,
        *,
        settings: Settings | None = None,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._trees = trees
        self._transport = transport
        self._settings = settings or get_settings()
        self._locks = locks or _CUSTOMER_LOCKS
        self._clock = clock

    # ------------------------------------------------------------------
    # Incoming message processing

    def process_incoming_message(
        self, tenant: TenantWhatsApp, inbound: NormalizedMessage
    ) -> ProcessOutcome:
        credentials = self._credentials(tenant, inbound.phone_number_id)
        customer = inbound.sender_id
        logger.info(
            "whatsapp inbound message from=%s message_id=%s tenant=%s type=%s",
            customer,
            inbound.message_id,
            tenant.tenant_id,
            inbound.message.type,
        )

        if self._repository.is_duplicate_message(inbound.message_id):
            return ProcessOutcome("duplicate")
        try:
            self._repository.mark_message_processed(inbound.message_id)
        except DuplicateMessageError:
            return ProcessOutcome("duplicate")

        with self._locks.hold((tenant.tenant_id, customer)):
            existing = self._repository.get_conversation(customer)
            if existing is not None and existing.handoff_to_human:
                logger.debug("conversation handed off; skipping customer=%s", customer)
                return ProcessOutcome("handoff", conversation=existing)

            state = ConversationState(
                current_node_key=existing.current_node if existing else None,
                answers=existing.string_answers() if existing else {},
            )
            resolved = self._trees.resolve_tree(tenant.tenant_id)
            result = process_inbound(
                state,
                inbound.message,
                resolved.tree,
                default_tree=self._trees.default_tree,
            )

            now = self._clock()
            record = self._repository.upsert_conversation(
                customer,
                current_node=result.next_node_key,
                answers=result.updated_answers,
                slug=self._slug_for(existing, customer, now),
                last_inbound_at=now,
            )

            self._transport.send(customer, result.response_action, credentials)

            if result.should_handoff:
                self._repository.set_handoff(customer, True)
                record.handoff_to_human = True
                logger.info(
                    "conversation handed off tenant=%s slug=%s", tenant.tenant_id, record.slug
                )

        return ProcessOutcome("processed", conversation=record, result=result)

    # ------------------------------------------------------------------
    # Helpers

    def _credentials(
        self, tenant: TenantWhatsApp, phone_number_id: str
    ) -> WhatsAppCredentials:
        access_token = tenant.access_token or self._settings.whatsapp_access_token
        if not access_token:
            raise ConfigurationError("Missing WHATSAPP_ACCESS_TOKEN")
        return WhatsAppCredentials(
            phone_number_id=phone_number_id,
            access_token=access_token,
            graph_version=tenant.graph_version or self._settings.whatsapp_graph_version,
        )

    def _slug_for(
        self, existing: ConversationRecord | None, customer: str, now: datetime
    ) -> str:
        if existing is not None and existing.slug:
            return existing.slug
        base = build_lead_slug(customer, now.date())
        return ensure_unique_slug(
            base, lambda candidate: self._repository.is_slug_taken(candidate, customer)
        )
