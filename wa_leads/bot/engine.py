"""Conversation engine: one inbound message in, next state and reply out.

:func:`process_inbound` is a pure function of the stored state, the inbound
message and the tree. It never raises for stale state: a node key that no
longer exists restarts the customer at ``start`` and an unusable message
re-sends the current prompt. Persisting the result and sending the reply are
the caller's job (see :mod:`wa_leads.conversations.service`).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from .defaults import DEFAULT_TREE
from .tree import (
    START_NODE_KEY,
    ButtonsNode,
    EndNode,
    ListNode,
    ResponseAction,
    TextNode,
    Tree,
    build_response_action,
)


@dataclass(frozen=True)
class TextMessage:
    body: str
    type: Literal["text"] = field(default="text", init=False)


@dataclass(frozen=True)
class InteractiveMessage:
    button_reply_id: str | None = None
    list_reply_id: str | None = None
    type: Literal["interactive"] = field(default="interactive", init=False)


@dataclass(frozen=True)
class UnsupportedMessage:
    """Any inbound type the bot cannot take an answer from (media, stickers...)."""

    type: str = "unknown"


InboundMessage = Union[TextMessage, InteractiveMessage, UnsupportedMessage]


@dataclass
class ConversationState:
    current_node_key: str | None = None
    answers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineResult:
    next_node_key: str
    updated_answers: dict[str, str]
    response_action: ResponseAction
    should_handoff: bool


def _reply_id(container: Any) -> str | None:
    if isinstance(container, Mapping):
        value = container.get("id")
        if isinstance(value, str):
            return value
    return None


def parse_inbound_message(raw: Mapping[str, Any]) -> InboundMessage:
    """Normalise a WhatsApp Cloud ``messages[]`` entry.

    ``text`` messages need a string ``text.body``; ``interactive`` messages
    need an ``interactive`` object. Anything else is unsupported.
    """

    message_type = raw.get("type")
    if message_type == "text":
        text = raw.get("text")
        if isinstance(text, Mapping) and isinstance(text.get("body"), str):
            return TextMessage(text["body"])
    elif message_type == "interactive":
        interactive = raw.get("interactive")
        if isinstance(interactive, Mapping):
            return InteractiveMessage(
                button_reply_id=_reply_id(interactive.get("button_reply")),
                list_reply_id=_reply_id(interactive.get("list_reply")),
            )
    return UnsupportedMessage(str(message_type) if message_type else "unknown")


def extract_answer(message: InboundMessage) -> str | None:
    """Return the customer's answer carried by ``message``, if any."""

    if isinstance(message, TextMessage):
        return message.body.strip()
    if isinstance(message, InteractiveMessage):
        if message.button_reply_id is not None:
            return message.button_reply_id
        return message.list_reply_id
    return None


def _stay(key: str, tree: Tree, answers: dict[str, str]) -> EngineResult:
    return EngineResult(
        next_node_key=key,
        updated_answers=answers,
        response_action=build_response_action(tree[key]),
        should_handoff=False,
    )


def process_inbound(
    state: ConversationState,
    message: InboundMessage,
    tree: Tree | None = None,
    *,
    default_tree: Tree = DEFAULT_TREE,
) -> EngineResult:
    """Advance ``state`` by one inbound ``message`` over ``tree``.

    ``tree`` must be a validated tree; ``None`` selects ``default_tree``.
    """

    tree = tree if tree is not None else default_tree
    answers = dict(state.answers)
    current_key = tree.resolve_key(state.current_node_key)
    current = tree[current_key]

    # soft terminal: a customer writing after the end starts over
    if isinstance(current, EndNode):
        return _stay(START_NODE_KEY, tree, answers)

    answer = extract_answer(message)
    if not answer:
        return _stay(current_key, tree, answers)

    if current.save_as:
        answers[current.save_as] = answer

    next_key: str | None = None
    if isinstance(current, TextNode):
        next_key = current.next
    elif isinstance(current, (ListNode, ButtonsNode)):
        for option in current.options:
            if option.matches(answer):
                next_key = option.next
                break

    if next_key is None:
        return _stay(current_key, tree, answers)

    next_key = tree.resolve_key(next_key)
    next_node = tree[next_key]
    return EngineResult(
        next_node_key=next_key,
        updated_answers=answers,
        response_action=build_response_action(next_node),
        should_handoff=isinstance(next_node, EndNode),
    )
