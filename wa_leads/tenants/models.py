"""Tenant configuration records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass
class TenantWhatsApp:
    """WhatsApp Cloud credentials registered for a tenant's phone number."""

    tenant_id: UUID
    phone_number_id: str
    access_token: str | None = None
    verify_token: str | None = None
    meta_app_secret: str | None = None
    graph_version: str | None = None


@dataclass
class TenantTreeRecord:
    """A tenant's stored tree definition in its raw ``{"nodes": ...}`` shape."""

    tenant_id: UUID
    tree: dict[str, Any] = field(default_factory=dict)
    name: str = "default"
    version: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
