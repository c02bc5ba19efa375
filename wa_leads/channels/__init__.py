"""Messaging channel adapters and transports."""

from __future__ import annotations

from .base import ChannelAdapter
from .whatsapp import WhatsAppAdapter, normalize_recipient

__all__ = ["ChannelAdapter", "WhatsAppAdapter", "normalize_recipient"]
