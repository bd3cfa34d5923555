"""Tests for the conflict detector."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from slotkeeper.core.conflicts import describe_conflicts, find_conflicts, has_conflict
from slotkeeper.models import BusyInterval, TimeWindow


def at(hour, minute=0) -> datetime:
    return datetime(2025, 3, 10, hour, minute, tzinfo=timezone.utc)


def busy(h1, m1, h2, m2, event_id=None, subject="Busy") -> BusyInterval:
    return BusyInterval(at(h1, m1), at(h2, m2), event_id=event_id, subject=subject)


def test_overlap_detected():
    assert has_conflict(TimeWindow(at(10), at(11)), [busy(10, 30, 11, 30)])


def test_containment_detected():
    assert has_conflict(TimeWindow(at(10), at(12)), [busy(10, 30, 11, 0)])
    assert has_conflict(TimeWindow(at(10, 30), at(11)), [busy(10, 0, 12, 0)])


def test_touching_end_is_not_conflict():
    assert not has_conflict(TimeWindow(at(10, 30), at(11)), [busy(10, 0, 10, 30)])


def test_touching_start_is_not_conflict():
    assert not has_conflict(TimeWindow(at(9, 30), at(10)), [busy(10, 0, 10, 30)])


def test_empty_busy_list():
    assert not has_conflict(TimeWindow(at(10), at(11)), [])


def test_unsorted_busy_list():
    intervals = [busy(15, 0, 16, 0), busy(8, 0, 9, 0), busy(10, 45, 11, 15)]
    assert has_conflict(TimeWindow(at(10), at(11)), intervals)


@pytest.mark.parametrize("offset_minutes", range(-90, 91, 15))
def test_half_open_law(offset_minutes):
    """Conflict iff start < busy.end and busy.start < end, for a sweep of offsets."""
    b = busy(10, 0, 11, 0)
    start = at(10) + timedelta(minutes=offset_minutes)
    candidate = TimeWindow(start, start + timedelta(hours=1))
    expected = candidate.start < b.end and b.start < candidate.end
    assert has_conflict(candidate, [b]) is expected


def test_ignore_event_id_skips_moved_event():
    intervals = [busy(10, 0, 11, 0, event_id="evt-1")]
    candidate = TimeWindow(at(10, 30), at(11, 30))
    assert has_conflict(candidate, intervals)
    assert not has_conflict(candidate, intervals, ignore_event_id="evt-1")
    assert has_conflict(candidate, intervals, ignore_event_id="evt-2")


def test_plain_time_windows_accepted():
    assert has_conflict(TimeWindow(at(10), at(11)), [TimeWindow(at(10, 15), at(10, 45))])


def test_find_conflicts_keeps_input_order():
    first, second = busy(10, 30, 11, 0, subject="B"), busy(10, 0, 10, 15, subject="A")
    found = find_conflicts(TimeWindow(at(10), at(11)), [busy(12, 0, 13, 0), first, second])
    assert found == [first, second]


def test_describe_conflicts():
    assert describe_conflicts([busy(10, 0, 11, 0, subject="Team sync")]) == 'conflicts with "Team sync"'
    assert describe_conflicts([busy(10, 0, 11, 0, subject="")]) == "conflicts with an existing event"
    assert describe_conflicts([busy(10, 0, 11, 0), busy(11, 0, 12, 0)]) == "conflicts with 2 events"
