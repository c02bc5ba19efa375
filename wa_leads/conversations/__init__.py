"""Conversation flow models, schemas and persistence.

The orchestration entry point lives in :mod:`wa_leads.conversations.service`;
it is not re-exported here because it depends on the channel layer, which in
turn imports these models.
"""

from . import schemas
from .models import ConversationRecord, NormalizedMessage, ProcessOutcome

__all__ = [
    "ConversationRecord",
    "NormalizedMessage",
    "ProcessOutcome",
    "schemas",
]
