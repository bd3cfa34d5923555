"""Abstract base for calendar providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ..models import Attendee, BookingRecord, BusyInterval, CalendarRef, ProviderEvent, TimeWindow


class CalendarProvider(ABC):
    """Base class for calendar backends (Graph-style, booking platforms, Google, ...).

    Implementations raise ``ProviderConflictError`` when the backend itself
    rejects a write because the slot is taken, and ``ProviderError`` for any
    other failure, including a payload of unexpected shape. Retrying
    transient failures is the provider's business.
    """

    @abstractmethod
    async def get_busy_times(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BusyInterval]:
        """Busy intervals on the calendar overlapping [start, end).

        Intervals carry the provider's event id where the backend has one,
        so a reschedule can leave the moved event out of the check.
        """
        ...

    @abstractmethod
    async def create_event(
        self,
        ref: CalendarRef,
        window: TimeWindow,
        attendee: Attendee,
        subject: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ProviderEvent:
        """Create an event. Returns the provider's id and canonical window."""
        ...

    async def list_bookings(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BookingRecord]:
        """Events on the calendar overlapping [start, end). Optional."""
        raise NotImplementedError("list_bookings not supported by this calendar provider")

    async def update_event(
        self,
        ref: CalendarRef,
        event_id: str,
        window: TimeWindow,
        subject: str | None = None,
        description: str | None = None,
    ) -> ProviderEvent:
        """Move an existing event. Optional; not all providers support this."""
        raise NotImplementedError("update_event not supported by this calendar provider")

    async def delete_event(self, ref: CalendarRef, event_id: str) -> None:
        """Delete a calendar event by ID. Optional; not all providers support this."""
        raise NotImplementedError("delete_event not supported by this calendar provider")

    async def aclose(self) -> None:
        """Release network clients. Safe to call more than once."""
