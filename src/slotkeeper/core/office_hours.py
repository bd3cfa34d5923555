"""Office hours evaluator: is an instant (or window) inside the agent's working day?"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from ..models import WEEKDAYS, TimeWindow, WeeklyOfficeHours
from ..timezone_resolver import get_zone

logger = logging.getLogger(__name__)

INVALID_CONFIG_REASON = "invalid office-hours configuration"


@dataclass(frozen=True)
class OfficeHoursCheck:
    within: bool
    reason: str = ""


def _as_zone(tz: str | ZoneInfo) -> ZoneInfo:
    return tz if isinstance(tz, ZoneInfo) else get_zone(tz)


def _tz_label(tz: str | ZoneInfo) -> str:
    return tz.key if isinstance(tz, ZoneInfo) else str(tz)


def is_within_office_hours(
    instant: datetime, hours: WeeklyOfficeHours, tz: str | ZoneInfo
) -> OfficeHoursCheck:
    """Check ``start <= local time < end`` for the instant's local weekday in ``tz``.

    A disabled day is never within hours. An enabled day whose start is not
    before its end (including windows crossing midnight) fails closed.
    """
    return _check(instant, hours, _as_zone(tz), _tz_label(tz))


def _check(instant: datetime, hours: WeeklyOfficeHours, zone: ZoneInfo, label: str) -> OfficeHoursCheck:
    local = instant.astimezone(zone)
    weekday = WEEKDAYS[local.weekday()]
    day = hours.get(weekday)

    if day is None or not day.enabled:
        return OfficeHoursCheck(False, f"closed on {weekday.capitalize()}")

    if day.start >= day.end:
        logger.warning("Office hours for %s are invalid (%s), failing closed", weekday, day.label())
        return OfficeHoursCheck(False, INVALID_CONFIG_REASON)

    local_time = local.time()
    if day.start <= local_time < day.end:
        return OfficeHoursCheck(True)

    return OfficeHoursCheck(False, f"outside hours ({day.label()} {label})")


def window_within_office_hours(
    window: TimeWindow, hours: WeeklyOfficeHours, tz: str | ZoneInfo
) -> OfficeHoursCheck:
    """A window must start in hours and finish by closing time on the same local day."""
    zone = _as_zone(tz)
    label = _tz_label(tz)
    start_check = _check(window.start, hours, zone, label)
    if not start_check.within:
        return start_check

    local_start = window.start.astimezone(zone)
    local_end = window.end.astimezone(zone)
    day = hours[WEEKDAYS[local_start.weekday()]]
    ends_same_day = local_end.date() == local_start.date()
    if ends_same_day and local_end.time() <= day.end:
        return OfficeHoursCheck(True)

    return OfficeHoursCheck(False, f"outside hours ({day.label()} {label})")

