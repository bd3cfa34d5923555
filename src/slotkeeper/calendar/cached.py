"""Calendar provider wrapper that caches busy-interval lookups."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..cache import TTLCache
from ..models import Attendee, BookingRecord, BusyInterval, CalendarRef, ProviderEvent, TimeWindow
from .base import CalendarProvider

logger = logging.getLogger(__name__)


class CachingCalendarProvider(CalendarProvider):
    """Caches ``get_busy_times`` per calendar and range. Booking listings are not cached.

    Any write through this wrapper drops every cached range of that calendar,
    so our own bookings are visible on the next check. Writes made elsewhere
    show up once the TTL expires.
    """

    def __init__(self, inner: CalendarProvider, cache: TTLCache, ttl: float = 300.0):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl

    @staticmethod
    def _prefix(ref: CalendarRef) -> str:
        return f"busy:{ref.cache_key()}:"

    async def get_busy_times(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BusyInterval]:
        key = f"{self._prefix(ref)}{start.isoformat()}/{end.isoformat()}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit: busy times for %s", ref.cache_key())
            return list(cached)
        busy = await self.inner.get_busy_times(ref, start, end)
        self.cache.set(key, tuple(busy), self.ttl)
        return busy

    async def list_bookings(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BookingRecord]:
        return await self.inner.list_bookings(ref, start, end)

    def invalidate(self, ref: CalendarRef) -> None:
        self.cache.invalidate_prefix(self._prefix(ref))

    async def create_event(
        self,
        ref: CalendarRef,
        window: TimeWindow,
        attendee: Attendee,
        subject: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ProviderEvent:
        try:
            return await self.inner.create_event(ref, window, attendee, subject, description, metadata)
        finally:
            self.invalidate(ref)

    async def update_event(
        self,
        ref: CalendarRef,
        event_id: str,
        window: TimeWindow,
        subject: str | None = None,
        description: str | None = None,
    ) -> ProviderEvent:
        try:
            return await self.inner.update_event(ref, event_id, window, subject, description)
        finally:
            self.invalidate(ref)

    async def delete_event(self, ref: CalendarRef, event_id: str) -> None:
        try:
            await self.inner.delete_event(ref, event_id)
        finally:
            self.invalidate(ref)

    async def aclose(self) -> None:
        await self.inner.aclose()
