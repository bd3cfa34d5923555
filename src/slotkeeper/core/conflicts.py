"""Conflict detector: half-open overlap against busy intervals."""

from __future__ import annotations

from collections.abc import Iterable

from ..models import BusyInterval, TimeWindow


def has_conflict(
    candidate: TimeWindow,
    busy: Iterable[TimeWindow],
    ignore_event_id: str | None = None,
) -> bool:
    """True iff ``candidate`` overlaps any busy interval.

    Intervals are half-open, so a window that starts exactly when a busy
    interval ends (or vice versa) is not a conflict. ``busy`` may be in any
    order. ``ignore_event_id`` skips the interval of an event being moved.
    """
    for b in busy:
        if ignore_event_id and getattr(b, "event_id", None) == ignore_event_id:
            continue
        if candidate.start < b.end and b.start < candidate.end:
            return True
    return False


def find_conflicts(
    candidate: TimeWindow,
    busy: Iterable[TimeWindow],
    ignore_event_id: str | None = None,
) -> list[TimeWindow]:
    """All busy intervals overlapping ``candidate``, in input order."""
    return [
        b
        for b in busy
        if not (ignore_event_id and getattr(b, "event_id", None) == ignore_event_id)
        and candidate.start < b.end
        and b.start < candidate.end
    ]


def describe_conflicts(conflicts: list[TimeWindow]) -> str:
    if not conflicts:
        return "no conflicts"
    if len(conflicts) == 1:
        subject = conflicts[0].subject if isinstance(conflicts[0], BusyInterval) else ""
        return f'conflicts with "{subject}"' if subject else "conflicts with an existing event"
    return f"conflicts with {len(conflicts)} events"
