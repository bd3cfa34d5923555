"""Tests for office hours evaluation and WeeklyOfficeHours parsing."""

from __future__ import annotations

from datetime import time, timedelta, timezone

import pytest

from conftest import local
from slotkeeper.core.office_hours import (
    INVALID_CONFIG_REASON,
    is_within_office_hours,
    window_within_office_hours,
)
from slotkeeper.errors import ConfigurationError
from slotkeeper.models import DayHours, TimeWindow, WeeklyOfficeHours, WEEKDAYS


TZ = "Australia/Melbourne"


# --- is_within_office_hours ---


def test_inside_hours(weekday_hours):
    assert is_within_office_hours(local(2025, 3, 11, 10), weekday_hours, TZ).within


def test_opening_time_is_inside(weekday_hours):
    assert is_within_office_hours(local(2025, 3, 11, 9), weekday_hours, TZ).within


def test_closing_time_is_outside(weekday_hours):
    check = is_within_office_hours(local(2025, 3, 11, 17), weekday_hours, TZ)
    assert not check.within
    assert "outside hours" in check.reason
    assert "09:00" in check.reason and "17:00" in check.reason


def test_before_opening(weekday_hours):
    assert not is_within_office_hours(local(2025, 3, 11, 8, 59), weekday_hours, TZ).within


def test_closed_day_reason_names_weekday(weekday_hours):
    check = is_within_office_hours(local(2025, 3, 15, 10), weekday_hours, TZ)
    assert not check.within
    assert check.reason == "closed on Saturday"


def test_evaluated_in_agent_timezone(weekday_hours):
    # Tuesday 23:00 UTC is Wednesday 10:00 in Melbourne
    instant = local(2025, 3, 11, 23, tz=timezone.utc)
    assert is_within_office_hours(instant, weekday_hours, TZ).within
    assert not is_within_office_hours(instant, weekday_hours, "UTC").within


def test_inverted_day_fails_closed():
    hours = WeeklyOfficeHours(days={d: DayHours() for d in WEEKDAYS} | {
        "tuesday": DayHours(start=time(22, 0), end=time(6, 0), enabled=True),
    })
    check = is_within_office_hours(local(2025, 3, 11, 23), hours, TZ)
    assert not check.within
    assert check.reason == INVALID_CONFIG_REASON


def test_disabled_day_with_hours_is_closed():
    hours = WeeklyOfficeHours.from_mapping({"tuesday": {"start": "09:00", "end": "17:00", "enabled": False}})
    assert not is_within_office_hours(local(2025, 3, 11, 10), hours, TZ).within


@pytest.mark.parametrize("hour", range(24))
def test_disabled_day_law(hour):
    hours = WeeklyOfficeHours.from_mapping({"monday": "09:00-17:00"})
    # Sunday is never within hours at any time of day
    assert not is_within_office_hours(local(2025, 3, 16, hour), hours, TZ).within


# --- window_within_office_hours ---


def test_window_ending_at_close_is_inside(weekday_hours):
    window = TimeWindow(local(2025, 3, 11, 16), local(2025, 3, 11, 17))
    assert window_within_office_hours(window, weekday_hours, TZ).within


def test_window_running_past_close(weekday_hours):
    window = TimeWindow(local(2025, 3, 11, 16, 30), local(2025, 3, 11, 17, 30))
    check = window_within_office_hours(window, weekday_hours, TZ)
    assert not check.within
    assert "outside hours" in check.reason


def test_window_spilling_into_next_day(weekday_hours):
    start = local(2025, 3, 11, 16)
    window = TimeWindow(start, start + timedelta(hours=18))
    assert not window_within_office_hours(window, weekday_hours, TZ).within


def test_window_on_closed_day(weekday_hours):
    window = TimeWindow(local(2025, 3, 15, 10), local(2025, 3, 15, 11))
    assert window_within_office_hours(window, weekday_hours, TZ).reason == "closed on Saturday"


# --- WeeklyOfficeHours ---


def test_from_mapping_shorthand_and_dict():
    hours = WeeklyOfficeHours.from_mapping({
        "Monday": "08:30-16:30",
        "tuesday": {"start": "10:00", "end": "14:00"},
        "wednesday": ["09:00-12:00"],
    })
    assert hours["monday"] == DayHours(time(8, 30), time(16, 30), True)
    assert hours["tuesday"] == DayHours(time(10), time(14), True)
    assert hours["wednesday"].end == time(12)
    assert not hours["thursday"].enabled
    assert hours.enabled_days() == ["monday", "tuesday", "wednesday"]


def test_from_mapping_unknown_weekday():
    with pytest.raises(ConfigurationError):
        WeeklyOfficeHours.from_mapping({"funday": "09:00-17:00"})


def test_from_mapping_bad_time():
    with pytest.raises(ConfigurationError):
        WeeklyOfficeHours.from_mapping({"monday": "9am-5pm"})


def test_from_mapping_multiple_ranges_rejected():
    with pytest.raises(ConfigurationError):
        WeeklyOfficeHours.from_mapping({"monday": ["09:00-12:00", "13:00-17:00"]})


def test_validate_accepts_parsed_hours(weekday_hours):
    weekday_hours.validate()


def test_validate_missing_day():
    hours = WeeklyOfficeHours(days={"monday": DayHours(time(9), time(17), True)})
    with pytest.raises(ConfigurationError, match="missing entry for tuesday"):
        hours.validate()


def test_validate_crossing_midnight():
    hours = WeeklyOfficeHours.from_mapping({"friday": "22:00-02:00"})
    with pytest.raises(ConfigurationError, match="friday start must be before end"):
        hours.validate()


def test_validate_ignores_disabled_inverted_day():
    hours = WeeklyOfficeHours.from_mapping({"friday": {"start": "22:00", "end": "02:00", "enabled": False}})
    hours.validate()
