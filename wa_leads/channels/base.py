"""Channel adapter interface between messaging providers and the engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from ..bot.tree import ResponseAction
from ..conversations.models import NormalizedMessage


class ChannelAdapter(ABC):
    """Translate provider webhooks into engine messages and actions back out.

    An adapter owns three things for its provider: reading inbound webhook
    bodies, authenticating them, and rendering a :data:`ResponseAction` as the
    provider's send request.
    """

    channel_name: str

    @abstractmethod
    def parse_incoming(self, payload: Mapping[str, Any]) -> Iterable[NormalizedMessage]:
        """Yield one :class:`NormalizedMessage` per customer message in ``payload``."""

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        secret: str | None,
    ) -> bool:
        # providers without request signing accept everything
        return True

    @abstractmethod
    def build_outgoing_payload(self, to: str, action: ResponseAction) -> dict[str, Any]:
        """Render ``action`` as a send request body addressed to ``to``."""
