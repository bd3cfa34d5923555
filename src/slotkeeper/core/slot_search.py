"""Slot search: verdict for a requested window plus ranked alternatives."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from ..errors import ConfigurationError
from ..models import (
    AvailabilityVerdict,
    OutcomeKind,
    SlotCandidate,
    TimeWindow,
    WeeklyOfficeHours,
)
from ..timezone_resolver import get_zone
from .conflicts import describe_conflicts, find_conflicts, has_conflict
from .office_hours import window_within_office_hours

logger = logging.getLogger(__name__)

DEFAULT_STEP_MINUTES = 15
DEFAULT_HORIZON_DAYS = 7
NO_SLOTS_REASON = "no slots found in horizon"


def find_slots(
    requested: TimeWindow,
    hours: WeeklyOfficeHours,
    tz: str | ZoneInfo,
    busy: Iterable[TimeWindow],
    now: datetime,
    min_lead_minutes: int,
    max_suggestions: int,
    step_minutes: int = DEFAULT_STEP_MINUTES,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    ignore_event_id: str | None = None,
) -> AvailabilityVerdict:
    """Decide whether ``requested`` is bookable; if not, suggest alternatives.

    The requested window is refused when it starts before ``now + lead``
    (IN_THE_PAST or TOO_SOON), falls outside office hours, or overlaps a busy
    interval. Alternatives of the same duration are then found by a forward
    scan from the earliest allowed start, rounded up to the next step
    boundary, in fixed steps over a bounded horizon.

    "No availability" is a normal verdict. Only structurally invalid inputs
    (office hours, timezone, busy intervals, search parameters) raise
    ConfigurationError.
    """
    zone = _validate(hours, tz, now, min_lead_minutes, max_suggestions, step_minutes, horizon_days)
    busy = _snapshot(busy)

    lead_boundary = now + timedelta(minutes=min_lead_minutes)
    earliest_allowed = max(lead_boundary, requested.start)

    kind: OutcomeKind
    if requested.start < lead_boundary:
        earliest_allowed = lead_boundary
        if requested.start < now:
            kind, reason = OutcomeKind.IN_THE_PAST, "in the past"
        else:
            kind = OutcomeKind.TOO_SOON
            reason = f"too soon (bookings need {min_lead_minutes} minutes notice)"
    else:
        office = window_within_office_hours(requested, hours, tz)
        conflicts = [] if not office.within else find_conflicts(requested, busy, ignore_event_id)
        if not office.within:
            kind, reason = OutcomeKind.OUT_OF_OFFICE_HOURS, office.reason
        elif conflicts:
            kind, reason = OutcomeKind.CONFLICT, describe_conflicts(conflicts)
        else:
            logger.debug("Requested window %s is available", requested)
            return AvailabilityVerdict(is_available=True)

    logger.debug("Requested window %s refused: %s (%s)", requested, kind.value, reason)

    alternatives = _scan(
        requested=requested,
        scan_from=earliest_allowed,
        hours=hours,
        zone=zone,
        busy=busy,
        max_suggestions=max_suggestions,
        step=timedelta(minutes=step_minutes),
        horizon=timedelta(days=horizon_days),
        ignore_event_id=ignore_event_id,
    )
    if not alternatives:
        reason = NO_SLOTS_REASON

    return AvailabilityVerdict(
        is_available=False,
        reason=reason,
        alternatives=tuple(alternatives),
        kind=kind,
        earliest_allowed=earliest_allowed if kind in (OutcomeKind.TOO_SOON, OutcomeKind.IN_THE_PAST) else None,
    )


def list_slots(
    within: TimeWindow,
    duration_minutes: int,
    hours: WeeklyOfficeHours,
    tz: str | ZoneInfo,
    busy: Iterable[TimeWindow],
    now: datetime,
    min_lead_minutes: int,
    max_slots: int,
    step_minutes: int = DEFAULT_STEP_MINUTES,
    ignore_event_id: str | None = None,
) -> list[SlotCandidate]:
    """Every bookable slot of ``duration_minutes`` that fits inside ``within``.

    Uses the same scan as the alternatives of ``find_slots``, bounded by the
    range instead of the horizon. Confidence decays with distance from the
    start of the range.
    """
    zone = _validate(hours, tz, now, min_lead_minutes, max_slots, step_minutes, 1)
    if duration_minutes <= 0:
        raise ConfigurationError(f"slot duration must be positive, got {duration_minutes}")
    busy = _snapshot(busy)

    scan_from = max(within.start, now + timedelta(minutes=min_lead_minutes))
    if scan_from >= within.end:
        return []
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    return _scan(
        requested=TimeWindow(within.start, within.start + duration),
        scan_from=scan_from,
        hours=hours,
        zone=zone,
        busy=busy,
        max_suggestions=max_slots,
        # One extra step so a slot ending exactly at the range end is reached
        horizon=within.end - scan_from + step,
        step=step,
        ignore_event_id=ignore_event_id,
        until=within.end,
    )


def _scan(
    requested: TimeWindow,
    scan_from: datetime,
    hours: WeeklyOfficeHours,
    zone: ZoneInfo,
    busy: tuple[TimeWindow, ...],
    max_suggestions: int,
    step: timedelta,
    horizon: timedelta,
    ignore_event_id: str | None,
    until: datetime | None = None,
) -> list[SlotCandidate]:
    found: list[SlotCandidate] = []
    if max_suggestions == 0:
        return found

    duration = requested.duration
    start = ceil_to_step(scan_from, step, zone)
    for _ in range(int(horizon / step)):
        window = TimeWindow(start, start + duration)
        if until is not None and window.end > until:
            break
        if window_within_office_hours(window, hours, zone).within and not has_conflict(
            window, busy, ignore_event_id
        ):
            steps_away = max(0, math.ceil((start - requested.start) / step))
            found.append(SlotCandidate(window=window, confidence=1 / (1 + steps_away)))
            if len(found) >= max_suggestions:
                break
        start += step

    logger.debug("Slot scan from %s found %d alternative(s)", scan_from.isoformat(), len(found))
    return found


def ceil_to_step(instant: datetime, step: timedelta, zone: ZoneInfo) -> datetime:
    """Round up to the next step boundary of the local wall clock in ``zone``."""
    offset = instant.astimezone(zone).utcoffset() or timedelta(0)
    local_seconds = (instant + offset).timestamp()
    step_seconds = step.total_seconds()
    rounded = math.ceil(local_seconds / step_seconds) * step_seconds
    return datetime.fromtimestamp(rounded, tz=timezone.utc) - offset


def _validate(
    hours: WeeklyOfficeHours,
    tz: str | ZoneInfo,
    now: datetime,
    min_lead_minutes: int,
    max_suggestions: int,
    step_minutes: int,
    horizon_days: int,
) -> ZoneInfo:
    if not isinstance(hours, WeeklyOfficeHours):
        raise ConfigurationError(f"office hours must be WeeklyOfficeHours, got {type(hours).__name__}")
    hours.validate()
    zone = tz if isinstance(tz, ZoneInfo) else get_zone(tz)

    if now.tzinfo is None or now.utcoffset() is None:
        raise ConfigurationError("clock returned a naive datetime")
    if min_lead_minutes < 0:
        raise ConfigurationError(f"minimum lead time must be >= 0, got {min_lead_minutes}")
    if max_suggestions < 0:
        raise ConfigurationError(f"max_suggestions must be >= 0, got {max_suggestions}")
    if step_minutes <= 0 or horizon_days <= 0:
        raise ConfigurationError(
            f"step_minutes and horizon_days must be positive, got {step_minutes} and {horizon_days}"
        )
    return zone


def _snapshot(busy: Iterable[TimeWindow]) -> tuple[TimeWindow, ...]:
    if busy is None:
        raise ConfigurationError("busy intervals missing")
    snapshot = tuple(busy)
    for item in snapshot:
        if not isinstance(item, TimeWindow):
            raise ConfigurationError(f"busy interval has unexpected shape: {item!r}")
    return snapshot
