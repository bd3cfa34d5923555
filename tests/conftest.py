"""Shared fixtures for slotkeeper tests."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from slotkeeper.models import WeeklyOfficeHours

MELBOURNE = ZoneInfo("Australia/Melbourne")


def local(y, m, d, hh=0, mm=0, tz=MELBOURNE) -> datetime:
    """Aware datetime on the given local wall clock."""
    return datetime(y, m, d, hh, mm, tzinfo=tz)


@pytest.fixture
def weekday_hours() -> WeeklyOfficeHours:
    """Mon-Fri 09:00-17:00, weekend closed."""
    return WeeklyOfficeHours.from_mapping({
        "monday": "09:00-17:00",
        "tuesday": "09:00-17:00",
        "wednesday": "09:00-17:00",
        "thursday": "09:00-17:00",
        "friday": "09:00-17:00",
    })


@pytest.fixture
def monday_only() -> WeeklyOfficeHours:
    return WeeklyOfficeHours.from_mapping({"monday": ["09:00-17:00"]})
