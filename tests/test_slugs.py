from datetime import date

import pytest

from wa_leads.conversations.slugs import (
    SlugAllocationError,
    build_lead_slug,
    ensure_unique_slug,
)


def test_build_lead_slug_uses_last_four_digits_and_day_month():
    assert build_lead_slug("+52 1 844 123 4567", date(2024, 7, 5)) == "lead-4567-05-07"


def test_build_lead_slug_pads_short_numbers():
    assert build_lead_slug("12", date(2024, 12, 31)) == "lead-0012-31-12"


def test_ensure_unique_slug_returns_base_when_free():
    assert ensure_unique_slug("lead-1", lambda _: False) == "lead-1"


def test_ensure_unique_slug_appends_first_free_suffix():
    taken = {"lead-1", "lead-1-2", "lead-1-3"}

    assert ensure_unique_slug("lead-1", taken.__contains__) == "lead-1-4"


def test_ensure_unique_slug_gives_up_after_five():
    with pytest.raises(SlugAllocationError):
        ensure_unique_slug("lead-1", lambda _: True)
