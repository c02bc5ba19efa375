"""Tenant tree management: the validator is the only way a tree gets stored."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from ..bot.defaults import DEFAULT_TREE
from ..bot.tree import Tree
from ..bot.validator import validate_tree
from .models import TenantTreeRecord
from .repository import TenantRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTree:
    tree: Tree
    record: TenantTreeRecord | None

    @property
    def is_default(self) -> bool:
        return self.record is None


class TenantTreeService:
    def __init__(self, repository: TenantRepository, *, default_tree: Tree = DEFAULT_TREE) -> None:
        self._repository = repository
        self._default_tree = default_tree

    @property
    def default_tree(self) -> Tree:
        return self._default_tree

    def resolve_tree(self, tenant_id: UUID | str) -> ResolvedTree:
        """Return the tenant's tree, or the default when none is configured.

        A stored tree with no nodes counts as "not configured". A stored tree
        that fails validation raises :class:`TreeValidationError`; such a row
        can only appear when it was written without going through
        :meth:`replace_tree`.
        """

        record = self._repository.get_tree(tenant_id)
        if record is None or not (record.tree or {}).get("nodes"):
            return ResolvedTree(self._default_tree, None)
        return ResolvedTree(validate_tree(record.tree), record)

    def replace_tree(
        self,
        tenant_id: UUID | str,
        definition: dict[str, Any],
        *,
        name: str | None = None,
        version: str | None = None,
    ) -> TenantTreeRecord:
        """Validate ``definition`` and store it as the tenant's whole tree."""

        tree = validate_tree(definition)
        record = self._repository.upsert_tree(
            tenant_id, tree.to_dict(), name=name, version=version
        )
        logger.info(
            "tenant tree replaced tenant=%s nodes=%d version=%s",
            tenant_id,
            len(tree),
            version,
        )
        return record
