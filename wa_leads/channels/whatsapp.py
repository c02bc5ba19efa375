"""WhatsApp Cloud channel adapter."""

from __future__ import annotations

import hashlib
import hmac
import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from ..bot.engine import parse_inbound_message
from ..bot.tree import ButtonsAction, ListAction, ResponseAction
from ..conversations.models import NormalizedMessage
from .base import ChannelAdapter

SIGNATURE_HEADER = "X-Hub-Signature-256"
_SIGNATURE_RE = re.compile(r"^sha256=([a-f0-9]{64})$", re.IGNORECASE)


def normalize_recipient(phone: str) -> str:
    """Rewrite legacy Mexican mobile numbers (``521...``) to the ``52`` form."""

    if phone.startswith("521") and len(phone) > 3:
        return f"52{phone[3:]}"
    return phone


def _objects(value: Any) -> list[Mapping[str, Any]]:
    """Items of a JSON array that are objects; anything else yields nothing."""

    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _object(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _parse_timestamp(value: Any) -> datetime:
    if value:
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        except (ValueError, TypeError, OverflowError):
            pass
    return datetime.now(timezone.utc)


class WhatsAppAdapter(ChannelAdapter):
    channel_name = "whatsapp"

    def __init__(
        self,
        *,
        list_button_text: str = "Seleccionar",
        list_section_title: str = "Opciones",
    ) -> None:
        self.list_button_text = list_button_text
        self.list_section_title = list_section_title

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        secret: str | None,
    ) -> bool:
        if not secret:
            return True
        received = headers.get(SIGNATURE_HEADER) or headers.get(
            SIGNATURE_HEADER.lower()
        )
        if not received:
            return False
        match = _SIGNATURE_RE.match(received)
        if not match:
            return False
        provided = bytes.fromhex(match.group(1))
        expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
        return hmac.compare_digest(provided, expected)

    def parse_incoming(self, payload: Mapping[str, Any]) -> Iterable[NormalizedMessage]:
        for entry in _objects(payload.get("entry")):
            for change in _objects(entry.get("changes")):
                value = _object(change.get("value"))
                metadata = _object(value.get("metadata"))
                phone_number_id = metadata.get("phone_number_id")
                contacts = {
                    c["wa_id"]: c
                    for c in _objects(value.get("contacts"))
                    if isinstance(c.get("wa_id"), str)
                }
                for message in _objects(value.get("messages")):
                    sender_id = message.get("from")
                    message_id = message.get("id")
                    if not all(
                        isinstance(ident, str) and ident
                        for ident in (sender_id, message_id, phone_number_id)
                    ):
                        continue
                    contact = contacts.get(sender_id, {})
                    yield NormalizedMessage(
                        phone_number_id=str(phone_number_id),
                        message_id=str(message_id),
                        sender_id=str(sender_id),
                        message=parse_inbound_message(message),
                        sender_name=_object(contact.get("profile")).get("name"),
                        metadata={
                            "channel_payload": message,
                            "sender": contact,
                            "wa_business_account": metadata,
                        },
                        sent_at=_parse_timestamp(message.get("timestamp")),
                    )

    def build_outgoing_payload(self, to: str, action: ResponseAction) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "to": normalize_recipient(to),
        }
        if isinstance(action, ButtonsAction):
            payload["type"] = "interactive"
            payload["interactive"] = {
                "type": "button",
                "body": {"text": action.body},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": o.id, "title": o.title}}
                        for o in action.options
                    ]
                },
            }
        elif isinstance(action, ListAction):
            rows = []
            for option in action.options:
                row = {"id": option.id, "title": option.title}
                if option.description:
                    row["description"] = option.description
                rows.append(row)
            payload["type"] = "interactive"
            payload["interactive"] = {
                "type": "list",
                "body": {"text": action.body},
                "action": {
                    "button": self.list_button_text,
                    "sections": [{"title": self.list_section_title, "rows": rows}],
                },
            }
        else:
            payload["type"] = "text"
            payload["text"] = {"body": action.body}
        return payload
