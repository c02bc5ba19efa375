"""WhatsApp Cloud webhook: subscription handshake and inbound messages."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from dataclasses import dataclass
from functools import lru_cache

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from ..channels.transport import MessageTransport, WhatsAppCloudClient, WhatsAppSendError
from ..channels.whatsapp import WhatsAppAdapter
from ..conversations.models import NormalizedMessage
from ..conversations.repository import PostgresConversationRepository
from ..conversations.service import LeadConversationService
from ..core.config import ConfigurationError, get_settings
from ..core.db import connect
from ..tenants.models import TenantWhatsApp
from ..tenants.repository import PostgresTenantRepository, TenantRepository
from ..tenants.service import TenantTreeService

router = APIRouter(tags=["whatsapp"])

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/webhooks/whatsapp"


@dataclass
class WebhookServices:
    tenants: TenantRepository
    conversations_for: Callable[[TenantWhatsApp], LeadConversationService]
    # entered once per inbound message; a failure only undoes that message
    message_scope: Callable[[], AbstractContextManager] = nullcontext


def get_adapter() -> WhatsAppAdapter:
    settings = get_settings()
    return WhatsAppAdapter(
        list_button_text=settings.list_button_text,
        list_section_title=settings.list_section_title,
    )


@lru_cache(maxsize=1)
def get_transport() -> MessageTransport:
    settings = get_settings()
    return WhatsAppCloudClient(
        get_adapter(),
        base_url=settings.whatsapp_api_base_url,
        timeout=settings.whatsapp_send_timeout,
    )


@contextmanager
def _service_context() -> Iterator[WebhookServices]:
    try:
        conn = connect()
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    tenants = PostgresTenantRepository(conn)
    trees = TenantTreeService(tenants)
    transport = get_transport()

    def conversations_for(tenant: TenantWhatsApp) -> LeadConversationService:
        repository = PostgresConversationRepository(conn, tenant_id=tenant.tenant_id)
        return LeadConversationService(repository, trees, transport)

    try:
        yield WebhookServices(
            tenants=tenants,
            conversations_for=conversations_for,
            message_scope=conn.transaction,
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _ok() -> JSONResponse:
    return JSONResponse({"ok": True})


@router.get(WEBHOOK_PATH)
def verify_subscription(request: Request) -> Response:
    params = request.query_params
    mode = params.get("hub.mode")
    verify_token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge")

    if mode != "subscribe":
        return PlainTextResponse("OK")

    with _service_context() as services:
        tenant = services.tenants.find_by_verify_token(verify_token) if verify_token else None
    if tenant is None:
        logger.warning("whatsapp subscription rejected: unknown verify token")
        return Response(status_code=status.HTTP_403_FORBIDDEN)
    return PlainTextResponse(challenge or "")


def _handle_message(
    services: WebhookServices, tenant: TenantWhatsApp, normalized: NormalizedMessage
) -> None:
    """Process one message in its own scope; errors are logged, not raised."""

    try:
        with services.message_scope():
            try:
                outcome = services.conversations_for(tenant).process_incoming_message(
                    tenant, normalized
                )
            except WhatsAppSendError as exc:
                # state was persisted before dispatch; keep it
                logger.error(
                    "whatsapp reply failed message_id=%s status=%s",
                    normalized.message_id,
                    exc.status_code,
                )
                return
    except Exception:
        logger.exception(
            "whatsapp message %s failed tenant=%s", normalized.message_id, tenant.tenant_id
        )
        return
    logger.debug("whatsapp message %s handled: %s", normalized.message_id, outcome.status)


@router.post(WEBHOOK_PATH)
async def receive_webhook(request: Request) -> Response:
    body_bytes = await request.body()
    try:
        payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=400, detail=f"Invalid JSON payload: {exc}"
        ) from exc

    adapter = get_adapter()
    try:
        messages = list(adapter.parse_incoming(payload)) if isinstance(payload, dict) else []
        if not messages:
            logger.info("whatsapp webhook received (no message)")
            return _ok()

        with _service_context() as services:
            routed = []
            for normalized in messages:
                tenant = services.tenants.find_by_phone_number_id(normalized.phone_number_id)
                if tenant is None:
                    logger.warning(
                        "whatsapp webhook ignored: tenant not configured phone_number_id=%s",
                        normalized.phone_number_id,
                    )
                    continue
                if not adapter.verify_signature(
                    body_bytes, request.headers, tenant.meta_app_secret
                ):
                    logger.warning(
                        "invalid whatsapp webhook signature tenant=%s", tenant.tenant_id
                    )
                    return Response(status_code=status.HTTP_401_UNAUTHORIZED)
                normalized.tenant_id = tenant.tenant_id
                routed.append((tenant, normalized))

            for tenant, normalized in routed:
                _handle_message(services, tenant, normalized)
    except Exception:
        # WhatsApp retries anything but a 200; failures are only logged
        logger.exception("whatsapp webhook processing failed")
    return _ok()
