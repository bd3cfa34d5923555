"""Availability resolution engine."""

from .conflicts import find_conflicts, has_conflict
from .normalizer import normalize, to_iso
from .office_hours import OfficeHoursCheck, is_within_office_hours, window_within_office_hours
from .slot_search import NO_SLOTS_REASON, find_slots

__all__ = [
    "NO_SLOTS_REASON",
    "OfficeHoursCheck",
    "find_conflicts",
    "find_slots",
    "has_conflict",
    "is_within_office_hours",
    "normalize",
    "to_iso",
    "window_within_office_hours",
]
