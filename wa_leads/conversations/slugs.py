"""Human-friendly lead identifiers such as ``lead-4321-20-07``."""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date

MAX_SLUG_SUFFIX = 5


class SlugAllocationError(RuntimeError):
    """Raised when every candidate slug for a lead is already taken."""


def _last_four_digits(value: str) -> str:
    digits = re.sub(r"\D", "", value)
    return digits[-4:].rjust(4, "0")


def build_lead_slug(customer_phone: str, today: date | None = None) -> str:
    today = today or date.today()
    return f"lead-{_last_four_digits(customer_phone)}-{today.day:02d}-{today.month:02d}"


def ensure_unique_slug(base_slug: str, is_taken: Callable[[str], bool]) -> str:
    """Return ``base_slug`` or the first free ``base_slug-N`` (N = 2..5)."""

    if not is_taken(base_slug):
        return base_slug
    for suffix in range(2, MAX_SLUG_SUFFIX + 1):
        candidate = f"{base_slug}-{suffix}"
        if not is_taken(candidate):
            return candidate
    raise SlugAllocationError(f"Could not allocate unique slug for {base_slug}")
