"""Admin routes for tenant trees and captured leads."""

from __future__ import annotations

import hmac
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from ..bot.validator import TreeValidationError
from ..conversations import schemas as convo_schemas
from ..conversations.repository import (
    ConversationRepository,
    PostgresConversationRepository,
)
from ..core.config import ConfigurationError, get_settings
from ..core.db import connect
from ..tenants import schemas as tenant_schemas
from ..tenants.repository import PostgresTenantRepository
from ..tenants.service import TenantTreeService


@dataclass
class AdminServices:
    trees: TenantTreeService
    conversations_for: Callable[[UUID], ConversationRepository]


def require_admin_token(
    x_admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
) -> None:
    expected = get_settings().admin_api_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ADMIN_API_TOKEN not configured",
        )
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token"
        )


router = APIRouter(tags=["tenants"], dependencies=[Depends(require_admin_token)])


@contextmanager
def _service_context() -> Iterator[AdminServices]:
    try:
        conn = connect()
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    services = AdminServices(
        trees=TenantTreeService(PostgresTenantRepository(conn)),
        conversations_for=lambda tenant_id: PostgresConversationRepository(
            conn, tenant_id=tenant_id
        ),
    )
    try:
        yield services
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _invalid_tree(exc: TreeValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "message": "invalid tree",
            "issues": [issue.to_dict() for issue in exc.issues],
        },
    )


@router.get(
    "/api/tenants/{tenant_id}/tree", response_model=tenant_schemas.TreeResponse
)
def get_tree(tenant_id: UUID) -> tenant_schemas.TreeResponse:
    with _service_context() as services:
        try:
            resolved = services.trees.resolve_tree(tenant_id)
        except TreeValidationError as exc:
            raise _invalid_tree(exc) from exc
    record = resolved.record
    return tenant_schemas.TreeResponse(
        tenant_id=tenant_id,
        tree=resolved.tree.to_dict(),
        name=record.name if record else None,
        version=record.version if record else None,
        is_default=resolved.is_default,
        updated_at=record.updated_at if record else None,
    )


@router.put(
    "/api/tenants/{tenant_id}/tree", response_model=tenant_schemas.TreeResponse
)
def replace_tree(
    tenant_id: UUID, payload: tenant_schemas.TreeUpsertRequest
) -> tenant_schemas.TreeResponse:
    with _service_context() as services:
        try:
            record = services.trees.replace_tree(
                tenant_id, payload.tree, name=payload.name, version=payload.version
            )
        except TreeValidationError as exc:
            raise _invalid_tree(exc) from exc
    return tenant_schemas.TreeResponse(
        tenant_id=tenant_id,
        tree=record.tree,
        name=record.name,
        version=record.version,
        updated_at=record.updated_at,
    )


@router.get(
    "/api/tenants/{tenant_id}/conversations",
    response_model=convo_schemas.ConversationList,
)
def list_conversations(
    tenant_id: UUID,
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> convo_schemas.ConversationList:
    with _service_context() as services:
        repository = services.conversations_for(tenant_id)
        records = repository.list_conversations(limit=limit, offset=offset)
        total = repository.count_conversations()
    return convo_schemas.ConversationList(
        items=[convo_schemas.ConversationSummary.from_record(r) for r in records],
        pagination=convo_schemas.Pagination(
            limit=limit,
            offset=offset,
            total=total,
            has_more=offset + len(records) < total,
        ),
    )


@router.get(
    "/api/tenants/{tenant_id}/conversations/{slug}",
    response_model=convo_schemas.ConversationSummary,
)
def get_conversation(tenant_id: UUID, slug: str) -> convo_schemas.ConversationSummary:
    with _service_context() as services:
        record = services.conversations_for(tenant_id).get_conversation_by_slug(slug)
    if record is None:
        raise HTTPException(status_code=404, detail="conversation not found")
    return convo_schemas.ConversationSummary.from_record(record)
