"""Decision-tree conversation engine and tree validation."""

from .defaults import DEFAULT_TREE
from .engine import (
    ConversationState,
    EngineResult,
    InboundMessage,
    InteractiveMessage,
    TextMessage,
    UnsupportedMessage,
    parse_inbound_message,
    process_inbound,
)
from .tree import ResponseAction, Tree
from .validator import TreeIssue, TreeValidationError, collect_tree_issues, validate_tree

__all__ = [
    "DEFAULT_TREE",
    "ConversationState",
    "EngineResult",
    "InboundMessage",
    "InteractiveMessage",
    "ResponseAction",
    "TextMessage",
    "Tree",
    "TreeIssue",
    "TreeValidationError",
    "UnsupportedMessage",
    "collect_tree_issues",
    "parse_inbound_message",
    "process_inbound",
    "validate_tree",
]
