"""Pydantic schemas for tenant tree APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class TreeUpsertRequest(BaseModel):
    """Whole-tree replacement payload; the tree is validated before storage."""

    tree: dict[str, Any]
    name: str | None = Field(default=None, min_length=1)
    version: str | None = Field(default=None, min_length=1)


class TreeResponse(BaseModel):
    tenant_id: UUID
    tree: dict[str, Any]
    name: str | None = None
    version: str | None = None
    is_default: bool = False
    updated_at: datetime | None = None
