"""Runtime settings read from the environment."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing for the requested operation."""


@dataclasses.dataclass(frozen=True)
class Settings:
    """Service configuration; see README for the matching env variables."""

    database_url: str | None = None
    whatsapp_access_token: str | None = None
    whatsapp_graph_version: str = "v22.0"
    whatsapp_api_base_url: str = "https://graph.facebook.com"
    whatsapp_send_timeout: float = 10.0
    list_button_text: str = "Seleccionar"
    list_section_title: str = "Opciones"
    admin_api_token: str | None = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment with defaults for development."""

    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN") or None,
        whatsapp_graph_version=os.getenv("WHATSAPP_GRAPH_VERSION", "v22.0"),
        whatsapp_api_base_url=os.getenv(
            "WHATSAPP_API_BASE_URL", "https://graph.facebook.com"
        ).rstrip("/"),
        whatsapp_send_timeout=float(os.getenv("WHATSAPP_SEND_TIMEOUT", "10")),
        list_button_text=os.getenv("WHATSAPP_LIST_BUTTON_TEXT", "Seleccionar"),
        list_section_title=os.getenv("WHATSAPP_LIST_SECTION_TITLE", "Opciones"),
        admin_api_token=os.getenv("ADMIN_API_TOKEN") or None,
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
