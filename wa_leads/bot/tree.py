"""Typed conversation tree and the response actions it produces.

A tree maps node keys to one of four node variants. ``text`` nodes collect a
free-form answer and move to a fixed ``next`` node, ``list`` and ``buttons``
nodes branch on the option the customer picks, and ``end`` nodes close the
flow. Every node renders to a :data:`ResponseAction` that the transport layer
knows how to send.

Trees are immutable once built; editing a tenant's tree means validating and
storing a new one (see :mod:`wa_leads.bot.validator`).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Union

START_NODE_KEY = "start"


@dataclass(frozen=True)
class Option:
    """A selectable choice on a ``list`` or ``buttons`` node."""

    id: str
    title: str
    next: str

    def matches(self, answer: str) -> bool:
        normalized = answer.strip().lower()
        return self.id.lower() == normalized or self.title.lower() == normalized


@dataclass(frozen=True)
class TextNode:
    body: str
    next: str
    save_as: str | None = None
    type: Literal["text"] = field(default="text", init=False)


@dataclass(frozen=True)
class ListNode:
    body: str
    options: tuple[Option, ...]
    save_as: str | None = None
    type: Literal["list"] = field(default="list", init=False)


@dataclass(frozen=True)
class ButtonsNode:
    body: str
    options: tuple[Option, ...]
    save_as: str | None = None
    type: Literal["buttons"] = field(default="buttons", init=False)


@dataclass(frozen=True)
class EndNode:
    body: str
    save_as: str | None = None
    type: Literal["end"] = field(default="end", init=False)


Node = Union[TextNode, ListNode, ButtonsNode, EndNode]
ChoiceNode = Union[ListNode, ButtonsNode]


@dataclass(frozen=True)
class ActionOption:
    id: str
    title: str
    description: str | None = None


@dataclass(frozen=True)
class TextAction:
    body: str
    type: Literal["text"] = field(default="text", init=False)


@dataclass(frozen=True)
class EndAction:
    body: str
    type: Literal["end"] = field(default="end", init=False)


@dataclass(frozen=True)
class ListAction:
    body: str
    options: tuple[ActionOption, ...]
    type: Literal["list"] = field(default="list", init=False)


@dataclass(frozen=True)
class ButtonsAction:
    body: str
    options: tuple[ActionOption, ...]
    type: Literal["buttons"] = field(default="buttons", init=False)


ResponseAction = Union[TextAction, ListAction, ButtonsAction, EndAction]


def build_response_action(node: Node) -> ResponseAction:
    """Return the outbound action that presents ``node`` to the customer."""

    if isinstance(node, TextNode):
        return TextAction(node.body)
    if isinstance(node, ListNode):
        return ListAction(
            node.body, tuple(ActionOption(o.id, o.title) for o in node.options)
        )
    if isinstance(node, ButtonsNode):
        return ButtonsAction(
            node.body, tuple(ActionOption(o.id, o.title) for o in node.options)
        )
    return EndAction(node.body)


def action_to_dict(action: ResponseAction) -> dict[str, Any]:
    """Serialise ``action`` into the JSON shape used by logs and API responses."""

    data: dict[str, Any] = {"type": action.type, "body": action.body}
    if isinstance(action, (ListAction, ButtonsAction)):
        data["options"] = [{"id": o.id, "title": o.title} for o in action.options]
    return data


class Tree(Mapping[str, Node]):
    """Read-only mapping of node key to :data:`Node`.

    Instances are normally produced by :func:`wa_leads.bot.validator.validate_tree`
    which guarantees that ``start`` exists and every ``next`` reference
    resolves. Constructing one directly skips those checks.
    """

    def __init__(self, nodes: Mapping[str, Node]) -> None:
        self._nodes: Mapping[str, Node] = MappingProxyType(dict(nodes))

    def __getitem__(self, key: str) -> Node:
        return self._nodes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"Tree({list(self._nodes)!r})"

    @property
    def start(self) -> Node:
        return self._nodes[START_NODE_KEY]

    def resolve_key(self, key: str | None) -> str:
        """Return ``key`` when it names a node in this tree, else ``start``."""

        if key is not None and key in self._nodes:
            return key
        return START_NODE_KEY

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the ``{"nodes": {...}}`` wire shape."""

        nodes: dict[str, Any] = {}
        for key, node in self._nodes.items():
            data: dict[str, Any] = {"type": node.type, "body": node.body}
            if node.save_as is not None:
                data["saveAs"] = node.save_as
            if isinstance(node, TextNode):
                data["next"] = node.next
            elif isinstance(node, (ListNode, ButtonsNode)):
                data["options"] = [
                    {"id": o.id, "title": o.title, "next": o.next}
                    for o in node.options
                ]
            nodes[key] = data
        return {"nodes": nodes}
