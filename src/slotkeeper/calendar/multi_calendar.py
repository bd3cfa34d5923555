"""Multi-calendar manager: aggregates busy times and routes writes."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from ..models import Attendee, BookingRecord, BusyInterval, CalendarRef, ProviderEvent, TimeWindow
from .base import CalendarProvider

logger = logging.getLogger(__name__)


class MultiCalendarManager(CalendarProvider):
    """Wraps multiple CalendarProvider instances.

    - get_busy_times: returns the union of busy times from ALL providers
    - create/update/delete/list_bookings: go to the "book" provider only

    Watch providers are typically a booking platform sitting next to the
    agent's Graph calendar (or the other way round): both can hold
    appointments, only one owns new ones. Each watch provider is keyed by
    its calendar name; an agent is checked against it only when the agent's
    ``CalendarRef`` links a calendar id under that name.
    """

    def __init__(
        self,
        book_provider: CalendarProvider,
        watch_providers: dict[str, CalendarProvider],
        book_name: str = "primary",
    ):
        self.book_provider = book_provider
        self.watch_providers = watch_providers
        self.book_name = book_name

    async def get_busy_times(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BusyInterval]:
        """Union of busy times from all calendars.

        Book provider failure propagates (prevents double-bookings).
        Watch provider failures are logged and tolerated.
        """
        book_busy = await self.book_provider.get_busy_times(ref, start, end)

        async def _safe_get_busy(name: str, provider: CalendarProvider) -> list[BusyInterval]:
            watch_ref = ref.for_watch(name)
            if watch_ref is None:
                logger.debug("No '%s' calendar linked for %s", name, ref.cache_key())
                return []
            try:
                return await provider.get_busy_times(watch_ref, start, end)
            except Exception:
                logger.exception("Failed to get busy times from watch calendar '%s'", name)
                return []

        watch_results = await asyncio.gather(
            *[_safe_get_busy(name, p) for name, p in self.watch_providers.items()]
        )

        all_busy = list(book_busy)
        for intervals in watch_results:
            all_busy.extend(intervals)

        all_busy.sort(key=lambda s: s.start)
        return all_busy

    async def list_bookings(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BookingRecord]:
        return await self.book_provider.list_bookings(ref, start, end)

    async def create_event(
        self,
        ref: CalendarRef,
        window: TimeWindow,
        attendee: Attendee,
        subject: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ProviderEvent:
        return await self.book_provider.create_event(ref, window, attendee, subject, description, metadata)

    async def update_event(
        self,
        ref: CalendarRef,
        event_id: str,
        window: TimeWindow,
        subject: str | None = None,
        description: str | None = None,
    ) -> ProviderEvent:
        return await self.book_provider.update_event(ref, event_id, window, subject, description)

    async def delete_event(self, ref: CalendarRef, event_id: str) -> None:
        await self.book_provider.delete_event(ref, event_id)

    async def aclose(self) -> None:
        await self.book_provider.aclose()
        for provider in self.watch_providers.values():
            await provider.aclose()
