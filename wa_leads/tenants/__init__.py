"""Tenant configuration: WhatsApp credentials and conversation trees."""

from .models import TenantTreeRecord, TenantWhatsApp
from .repository import (
    InMemoryTenantRepository,
    PostgresTenantRepository,
    TenantRepository,
)

__all__ = [
    "InMemoryTenantRepository",
    "PostgresTenantRepository",
    "TenantRepository",
    "TenantTreeRecord",
    "TenantWhatsApp",
]
