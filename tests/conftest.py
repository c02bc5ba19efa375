import pathlib
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI, Request

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from wa_leads.app_logging import init_logging
from wa_leads.bot.tree import ResponseAction
from wa_leads.channels.transport import WhatsAppCredentials
from wa_leads.conversations.repository import InMemoryConversationRepository
from wa_leads.conversations.service import LeadConversationService
from wa_leads.core.config import Settings, reset_settings_cache
from wa_leads.core.locks import KeyedLock
from wa_leads.tenants.models import TenantWhatsApp
from wa_leads.tenants.repository import InMemoryTenantRepository
from wa_leads.tenants.service import TenantTreeService

LEAD_TREE = {
    "nodes": {
        "start": {
            "type": "list",
            "body": "¿Qué te interesa?",
            "saveAs": "service",
            "options": [{"id": "rent", "title": "Renta", "next": "date"}],
        },
        "date": {"type": "text", "body": "¿Fecha?", "saveAs": "date", "next": "done"},
        "done": {"type": "end", "body": "Gracias"},
    }
}


@dataclass
class SentMessage:
    to: str
    action: ResponseAction
    credentials: WhatsAppCredentials


@dataclass
class RecordingTransport:
    """Transport double that records every outbound action."""

    sent: list[SentMessage] = field(default_factory=list)
    fail_with: Exception | None = None

    def send(self, to, action, credentials):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(SentMessage(to, action, credentials))
        return {"messages": [{"id": f"wamid.out.{len(self.sent)}"}]}


@dataclass
class LeadHarness:
    tenant: TenantWhatsApp
    tenants: InMemoryTenantRepository
    trees: TenantTreeService
    transport: RecordingTransport
    store: dict
    locks: KeyedLock
    now: datetime = datetime(2024, 7, 20, 15, 30, tzinfo=timezone.utc)

    def repository(self, tenant_id=None) -> InMemoryConversationRepository:
        return InMemoryConversationRepository(
            tenant_id or self.tenant.tenant_id, store=self.store
        )

    def service(self, tenant: TenantWhatsApp | None = None) -> LeadConversationService:
        tenant = tenant or self.tenant
        return LeadConversationService(
            self.repository(tenant.tenant_id),
            self.trees,
            self.transport,
            settings=Settings(whatsapp_access_token="env-token"),
            locks=self.locks,
            clock=lambda: self.now,
        )


@pytest.fixture
def lead_harness() -> LeadHarness:
    tenants = InMemoryTenantRepository()
    tenant = tenants.add_whatsapp(
        TenantWhatsApp(
            tenant_id=uuid.uuid4(),
            phone_number_id="1065",
            access_token="tenant-token",
            verify_token="verify-me",
            meta_app_secret=None,
        )
    )
    return LeadHarness(
        tenant=tenant,
        tenants=tenants,
        trees=TenantTreeService(tenants),
        transport=RecordingTransport(),
        store={},
        locks=KeyedLock(),
    )


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for name in (
        "DATABASE_URL",
        "WHATSAPP_ACCESS_TOKEN",
        "WHATSAPP_GRAPH_VERSION",
        "ADMIN_API_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app
