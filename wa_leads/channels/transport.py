"""Outbound delivery through the WhatsApp Cloud ``/messages`` endpoint."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import requests

from ..bot.tree import ResponseAction
from .whatsapp import WhatsAppAdapter


class WhatsAppSendError(RuntimeError):
    """Raised when the Cloud API rejects an outbound message."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"WhatsApp send failed: {status_code}")


@dataclass(frozen=True)
class WhatsAppCredentials:
    phone_number_id: str
    access_token: str
    graph_version: str


class MessageTransport(Protocol):
    def send(
        self, to: str, action: ResponseAction, credentials: WhatsAppCredentials
    ) -> Any: ...


class WhatsAppCloudClient:
    """Send :data:`ResponseAction` values to a customer via the Graph API."""

    def __init__(
        self,
        adapter: WhatsAppAdapter | None = None,
        *,
        base_url: str = "https://graph.facebook.com",
        timeout: float = 10.0,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.adapter = adapter or WhatsAppAdapter()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def _url(self, credentials: WhatsAppCredentials) -> str:
        version = quote(credentials.graph_version, safe="")
        phone_number_id = quote(credentials.phone_number_id, safe="")
        return f"{self.base_url}/{version}/{phone_number_id}/messages"

    def send(
        self, to: str, action: ResponseAction, credentials: WhatsAppCredentials
    ) -> Any:
        payload = self.adapter.build_outgoing_payload(to, action)
        response = self.session.post(
            self._url(credentials),
            headers={
                "Authorization": f"Bearer {credentials.access_token}",
                "Content-Type": "application/json",
            },
            data=json.dumps(payload),
            timeout=self.timeout,
        )
        text = response.text
        if not response.ok:
            self.logger.error(
                "whatsapp send failed status=%s body=%s", response.status_code, text
            )
            raise WhatsAppSendError(response.status_code, text)
        if not text:
            return {}
        try:
            return json.loads(text)
        except ValueError:
            return text
