"""Validation and compilation of raw tenant trees.

Raw trees arrive as JSON in the shape::

    {"nodes": {"start": {"type": "list", "body": "...", "saveAs": "service",
                         "options": [{"id": "rent", "title": "Renta", "next": "date"}]},
               ...}}

or as the bare node mapping without the ``nodes`` wrapper.

Each node is parsed with a pydantic discriminated union keyed on ``type`` and
the graph is then checked for reference closure. Every problem found is
reported; nothing is applied unless the whole tree is valid.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .tree import (
    START_NODE_KEY,
    ButtonsNode,
    EndNode,
    ListNode,
    Node,
    Option,
    TextNode,
    Tree,
)

__all__ = [
    "TreeIssue",
    "TreeValidationError",
    "collect_tree_issues",
    "validate_tree",
]


class OptionSchema(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    next: str = Field(min_length=1)


class _NodeSchemaBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    body: str = Field(min_length=1)
    save_as: str | None = Field(default=None, alias="saveAs", min_length=1)


class TextNodeSchema(_NodeSchemaBase):
    type: Literal["text"]
    next: str = Field(min_length=1)


class ListNodeSchema(_NodeSchemaBase):
    type: Literal["list"]
    options: list[OptionSchema] = Field(min_length=1)


class ButtonsNodeSchema(_NodeSchemaBase):
    type: Literal["buttons"]
    options: list[OptionSchema] = Field(min_length=1)


class EndNodeSchema(_NodeSchemaBase):
    type: Literal["end"]


NodeSchema = Annotated[
    Union[TextNodeSchema, ListNodeSchema, ButtonsNodeSchema, EndNodeSchema],
    Field(discriminator="type"),
]

_NODE_ADAPTER: TypeAdapter[Any] = TypeAdapter(NodeSchema)


@dataclass(frozen=True)
class TreeIssue:
    """A single violation found while validating a tree."""

    message: str
    path: tuple[str | int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "path": list(self.path)}


class TreeValidationError(ValueError):
    """Raised when a raw tree definition cannot be accepted."""

    def __init__(self, issues: list[TreeIssue]) -> None:
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues[:3])
        if len(self.issues) > 3:
            summary += f" (+{len(self.issues) - 3} more)"
        super().__init__(f"invalid tree: {summary}")


def _to_node(schema: BaseModel) -> Node:
    if isinstance(schema, TextNodeSchema):
        return TextNode(body=schema.body, next=schema.next, save_as=schema.save_as)
    if isinstance(schema, (ListNodeSchema, ButtonsNodeSchema)):
        options = tuple(Option(o.id, o.title, o.next) for o in schema.options)
        cls = ListNode if isinstance(schema, ListNodeSchema) else ButtonsNode
        return cls(body=schema.body, options=options, save_as=schema.save_as)
    return EndNode(body=schema.body, save_as=schema.save_as)


def _structural_issues(
    key: str, raw_node: Any, exc: ValidationError
) -> list[TreeIssue]:
    tag = raw_node.get("type") if isinstance(raw_node, Mapping) else None
    issues = []
    for error in exc.errors():
        loc = tuple(error["loc"])
        # discriminated unions prefix the location with the matched tag
        if loc and tag is not None and loc[0] == tag:
            loc = loc[1:]
        where = ".".join(str(part) for part in loc)
        detail = f"{where}: {error['msg']}" if where else error["msg"]
        issues.append(TreeIssue(f'node "{key}" {detail}', (key, *loc)))
    return issues


def _compile(definition: Any) -> tuple[dict[str, Node], list[TreeIssue]]:
    if not isinstance(definition, Mapping):
        return {}, [TreeIssue("tree definition must be an object")]
    # either {"nodes": {...}} or the node mapping itself
    raw_nodes = definition["nodes"] if "nodes" in definition else definition
    if not isinstance(raw_nodes, Mapping):
        return {}, [TreeIssue("tree must define a nodes object", ("nodes",))]

    issues: list[TreeIssue] = []
    nodes: dict[str, Node] = {}

    if not raw_nodes:
        issues.append(TreeIssue("tree must define at least one node"))
    if START_NODE_KEY not in raw_nodes:
        issues.append(TreeIssue("tree must define a start node"))

    for key, raw_node in raw_nodes.items():
        if not isinstance(key, str) or not key:
            issues.append(TreeIssue("node keys must be non-empty strings", (str(key),)))
            continue
        try:
            schema = _NODE_ADAPTER.validate_python(raw_node)
        except ValidationError as exc:
            issues.extend(_structural_issues(key, raw_node, exc))
            continue
        nodes[key] = _to_node(schema)

    # keys of structurally broken nodes still count as defined targets
    defined = set(raw_nodes)
    for key, node in nodes.items():
        if isinstance(node, TextNode):
            if node.next not in defined:
                issues.append(
                    TreeIssue(
                        f'node "{key}" points to missing next node "{node.next}"',
                        (key, "next"),
                    )
                )
        elif isinstance(node, (ListNode, ButtonsNode)):
            for index, option in enumerate(node.options):
                if option.next not in defined:
                    issues.append(
                        TreeIssue(
                            f'node "{key}" option "{option.id}" points to missing '
                            f'next node "{option.next}"',
                            (key, "options", index, "next"),
                        )
                    )
    return nodes, issues


def collect_tree_issues(definition: Any) -> list[TreeIssue]:
    """Return every violation in ``definition``; an empty list means valid."""

    _, issues = _compile(definition)
    return issues


def validate_tree(definition: Any) -> Tree:
    """Compile a raw ``{"nodes": {...}}`` definition into a :class:`Tree`.

    Raises :class:`TreeValidationError` carrying the full list of issues when
    the definition is malformed or references undefined nodes.
    """

    nodes, issues = _compile(definition)
    if issues:
        raise TreeValidationError(issues)
    return Tree(nodes)
