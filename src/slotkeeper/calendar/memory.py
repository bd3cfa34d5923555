"""In-memory calendar provider for dry runs and tests."""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..errors import ProviderConflictError, ProviderError
from ..models import Attendee, BookingRecord, BusyInterval, CalendarRef, ProviderEvent, TimeWindow
from .base import CalendarProvider

logger = logging.getLogger(__name__)


class InMemoryCalendarProvider(CalendarProvider):
    """Keeps events per calendar in a dict.

    Like real backends, it rejects a write that would overlap an existing
    event with ``ProviderConflictError``, so stale availability checks surface
    the same way they would in production.
    """

    def __init__(self, busy: dict[CalendarRef, list[BusyInterval]] | None = None):
        self._events: dict[str, dict[str, BookingRecord]] = {}
        self._ids = itertools.count(1)
        for ref, intervals in (busy or {}).items():
            for interval in intervals:
                self._store(ref, interval.event_id, TimeWindow(interval.start, interval.end), interval.subject)

    def _calendar(self, ref: CalendarRef) -> dict[str, BookingRecord]:
        return self._events.setdefault(ref.cache_key(), {})

    def _store(
        self,
        ref: CalendarRef,
        event_id: str | None,
        window: TimeWindow,
        subject: str,
        attendees: tuple[Attendee, ...] = (),
    ) -> str:
        event_id = event_id or f"evt-{next(self._ids)}"
        self._calendar(ref)[event_id] = BookingRecord(
            event_id=event_id, window=window, subject=subject, attendees=attendees
        )
        return event_id

    def records(self, ref: CalendarRef) -> list[BookingRecord]:
        return sorted(self._calendar(ref).values(), key=lambda r: r.start)

    def events(self, ref: CalendarRef) -> list[BusyInterval]:
        return [r.as_busy() for r in self.records(ref)]

    def add_busy(self, ref: CalendarRef, start: datetime, end: datetime, subject: str = "Busy") -> str:
        return self._store(ref, None, TimeWindow(start, end), subject)

    async def list_bookings(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BookingRecord]:
        return [r for r in self.records(ref) if r.start < end and start < r.end]

    async def get_busy_times(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BusyInterval]:
        return [r.as_busy() for r in await self.list_bookings(ref, start, end)]

    def _check_free(self, ref: CalendarRef, window: TimeWindow, ignore_event_id: str | None = None) -> None:
        for record in self._calendar(ref).values():
            if record.event_id == ignore_event_id:
                continue
            if window.overlaps(record.window):
                raise ProviderConflictError(conflicting_start=record.start)

    async def create_event(
        self,
        ref: CalendarRef,
        window: TimeWindow,
        attendee: Attendee,
        subject: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ProviderEvent:
        self._check_free(ref, window)
        attendees = (attendee,) if attendee.name or attendee.email else ()
        event_id = self._store(ref, None, TimeWindow(window.start, window.end), subject, attendees)
        logger.info("Created in-memory event %s on %s", event_id, ref.cache_key())
        return ProviderEvent(event_id=event_id, window=TimeWindow(window.start, window.end))

    async def update_event(
        self,
        ref: CalendarRef,
        event_id: str,
        window: TimeWindow,
        subject: str | None = None,
        description: str | None = None,
    ) -> ProviderEvent:
        existing = self._calendar(ref).get(event_id)
        if existing is None:
            raise ProviderError(f"event {event_id} not found", status=404)
        self._check_free(ref, window, ignore_event_id=event_id)
        moved = TimeWindow(window.start, window.end)
        self._calendar(ref)[event_id] = replace(
            existing, window=moved, subject=subject if subject is not None else existing.subject
        )
        return ProviderEvent(event_id=event_id, window=moved)

    async def delete_event(self, ref: CalendarRef, event_id: str) -> None:
        if self._calendar(ref).pop(event_id, None) is None:
            raise ProviderError(f"event {event_id} not found", status=404)
