import uuid
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient

import wa_leads.routers.tenants as tenants_router
from conftest import LEAD_TREE
from wa_leads.bot.defaults import DEFAULT_TREE
from wa_leads.bot.engine import InteractiveMessage
from wa_leads.conversations.models import NormalizedMessage
from wa_leads.core.config import reset_settings_cache
from wa_leads.main import app

ADMIN = {"X-Admin-Token": "admin-secret"}


@pytest.fixture
def admin(monkeypatch, lead_harness):
    monkeypatch.setenv("ADMIN_API_TOKEN", "admin-secret")
    reset_settings_cache()

    @contextmanager
    def fake_context():
        yield tenants_router.AdminServices(
            trees=lead_harness.trees,
            conversations_for=lead_harness.repository,
        )

    monkeypatch.setattr(tenants_router, "_service_context", fake_context)
    return TestClient(app), lead_harness


def _tree_url(harness):
    return f"/api/tenants/{harness.tenant.tenant_id}/tree"


def test_admin_routes_disabled_without_token(lead_harness):
    client = TestClient(app)

    resp = client.get(_tree_url(lead_harness), headers=ADMIN)

    assert resp.status_code == 503


def test_admin_routes_reject_wrong_token(admin):
    client, harness = admin

    assert client.get(_tree_url(harness)).status_code == 401
    assert client.get(_tree_url(harness), headers={"X-Admin-Token": "nope"}).status_code == 401


def test_get_tree_falls_back_to_default(admin):
    client, harness = admin

    resp = client.get(_tree_url(harness), headers=ADMIN)

    assert resp.status_code == 200
    data = resp.json()
    assert data["is_default"] is True
    assert data["tree"] == DEFAULT_TREE.to_dict()
    assert data["version"] is None


def test_put_tree_stores_validated_definition(admin):
    client, harness = admin

    resp = client.put(
        _tree_url(harness), json={"tree": LEAD_TREE, "name": "ventas", "version": "v2"}, headers=ADMIN
    )

    assert resp.status_code == 200
    assert resp.json()["name"] == "ventas"
    assert resp.json()["is_default"] is False

    fetched = client.get(_tree_url(harness), headers=ADMIN).json()
    assert fetched["is_default"] is False
    assert fetched["version"] == "v2"
    assert fetched["tree"] == LEAD_TREE


def test_put_invalid_tree_returns_all_issues(admin):
    client, harness = admin
    broken = {
        "nodes": {
            "start": {"type": "text", "body": "Hola", "next": "missing"},
            "menu": {"type": "buttons", "body": "?", "options": []},
        }
    }

    resp = client.put(_tree_url(harness), json={"tree": broken}, headers=ADMIN)

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["message"] == "invalid tree"
    paths = [issue["path"] for issue in detail["issues"]]
    assert ["start", "next"] in paths
    assert any(path[:2] == ["menu", "options"] for path in paths)
    assert harness.tenants.get_tree(harness.tenant.tenant_id) is None


def test_put_rejects_invalid_tenant_id(admin):
    client, _ = admin

    resp = client.put("/api/tenants/not-a-uuid/tree", json={"tree": LEAD_TREE}, headers=ADMIN)

    assert resp.status_code == 422


def test_conversation_listing_and_lookup(admin):
    client, harness = admin
    service = harness.service()
    for index, phone in enumerate(["5218441110001", "5218441110002", "5218441110003"]):
        service.process_incoming_message(
            harness.tenant,
            NormalizedMessage(
                phone_number_id="1065",
                message_id=f"wamid.{index}",
                sender_id=phone,
                message=InteractiveMessage(list_reply_id="rent"),
            ),
        )
    url = f"/api/tenants/{harness.tenant.tenant_id}/conversations"

    page = client.get(url, params={"limit": 2}, headers=ADMIN).json()

    assert len(page["items"]) == 2
    assert page["pagination"] == {"limit": 2, "offset": 0, "total": 3, "has_more": True}

    last = client.get(url, params={"limit": 2, "offset": 2}, headers=ADMIN).json()
    assert last["pagination"]["has_more"] is False

    lead = client.get(f"{url}/lead-0002-20-07", headers=ADMIN)
    assert lead.status_code == 200
    assert lead.json()["customer_phone"] == "5218441110002"
    assert lead.json()["answers"] == {"service": "rent"}

    assert client.get(f"{url}/lead-9999-01-01", headers=ADMIN).status_code == 404


def test_conversations_are_scoped_to_tenant(admin):
    client, harness = admin
    harness.repository().upsert_conversation(
        "5218441234567",
        current_node="date",
        answers={},
        slug="lead-4567-20-07",
        last_inbound_at=harness.now,
    )

    other = f"/api/tenants/{uuid.uuid4()}/conversations"

    assert client.get(other, headers=ADMIN).json()["pagination"]["total"] == 0
    assert client.get(f"{other}/lead-4567-20-07", headers=ADMIN).status_code == 404


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}])
def test_conversation_listing_validates_paging(admin, params):
    client, harness = admin

    resp = client.get(
        f"/api/tenants/{harness.tenant.tenant_id}/conversations", params=params, headers=ADMIN
    )

    assert resp.status_code == 422
