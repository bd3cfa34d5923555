"""Calendar providers."""

from .base import CalendarProvider
from .cached import CachingCalendarProvider
from .factory import build_calendar_provider
from .memory import InMemoryCalendarProvider
from .multi_calendar import MultiCalendarManager

__all__ = [
    "CachingCalendarProvider",
    "CalendarProvider",
    "InMemoryCalendarProvider",
    "MultiCalendarManager",
    "build_calendar_provider",
]
