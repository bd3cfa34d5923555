"""Booking-platform provider (Cal.com v2 API)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from ..errors import ProviderError
from ..models import Attendee, BookingRecord, BusyInterval, CalendarRef, ProviderEvent, TimeWindow
from .http import HttpCalendarProvider, TokenSource, parse_provider_datetime, utc_iso

logger = logging.getLogger(__name__)

CALCOM_BASE_URL = "https://api.cal.com/v2"
CALCOM_API_VERSION = "2024-08-13"
INACTIVE_STATUSES = {"cancelled", "rejected"}
PAGE_SIZE = 100


class CalcomProvider(HttpCalendarProvider):
    """Treats an event type as the agent's calendar.

    ``CalendarRef.calendar_id`` is the event type id. Busy times are the
    upcoming bookings of that event type; the platform's own "already has a
    booking" rejection surfaces as a provider-side conflict.
    """

    name = "calcom"
    conflict_markers = ("already has booking", "not available", "no available users")

    def __init__(
        self,
        token: TokenSource,
        base_url: str = CALCOM_BASE_URL,
        client: httpx.AsyncClient | None = None,
        attendee_timezone: str = "UTC",
        **kwargs,
    ):
        super().__init__(base_url, token, client=client, **kwargs)
        self.attendee_timezone = attendee_timezone

    def extra_headers(self) -> dict[str, str]:
        return {"cal-api-version": CALCOM_API_VERSION}

    async def list_bookings(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BookingRecord]:
        """Upcoming bookings of the event type in [start, end), all pages."""
        params: dict[str, Any] = {
            "status": "upcoming",
            "afterStart": utc_iso(start),
            "beforeEnd": utc_iso(end),
            "eventTypeId": ref.calendar_id,
            "take": PAGE_SIZE,
            "skip": 0,
        }
        records: list[BookingRecord] = []
        while True:
            page = _data(await self.request("GET", "/bookings", params=params))
            if not isinstance(page, list):
                raise ProviderError(f"calcom returned an unexpected bookings list for {ref.calendar_id}")
            for booking in page:
                record = _record_from_booking(booking)
                if record is not None:
                    records.append(record)
            if len(page) < PAGE_SIZE:
                break
            params["skip"] += PAGE_SIZE

        logger.debug("Listed %d bookings for event type %s", len(records), ref.calendar_id)
        return records

    async def get_busy_times(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BusyInterval]:
        busy = [r.as_busy() for r in await self.list_bookings(ref, start, end) if r.busy]
        logger.info("Found %d bookings for event type %s", len(busy), ref.calendar_id)
        return busy

    async def create_event(
        self,
        ref: CalendarRef,
        window: TimeWindow,
        attendee: Attendee,
        subject: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ProviderEvent:
        metadata = metadata or {}
        attendee_body: dict[str, Any] = {
            "name": attendee.name,
            "email": attendee.email,
            "timeZone": metadata.get("attendee_timezone", self.attendee_timezone),
        }
        if attendee.phone:
            attendee_body["phoneNumber"] = attendee.phone
        body: dict[str, Any] = {
            "start": utc_iso(window.start),
            "eventTypeId": _event_type_id(ref),
            "attendee": attendee_body,
            "lengthInMinutes": int(window.duration.total_seconds() // 60),
            # Platform metadata only takes string values
            "metadata": {str(k): str(v) for k, v in metadata.items()},
        }
        if description:
            body["bookingFieldsResponses"] = {"notes": description}

        created = await self.request("POST", "/bookings", json=body)
        return _event_from_booking(_data(created), window)

    async def update_event(
        self,
        ref: CalendarRef,
        event_id: str,
        window: TimeWindow,
        subject: str | None = None,
        description: str | None = None,
    ) -> ProviderEvent:
        body: dict[str, Any] = {"start": utc_iso(window.start)}
        if description:
            body["reschedulingReason"] = description
        rescheduled = await self.request("POST", f"/bookings/{event_id}/reschedule", json=body)
        return _event_from_booking(_data(rescheduled), window)

    async def delete_event(self, ref: CalendarRef, event_id: str) -> None:
        await self.request(
            "POST", f"/bookings/{event_id}/cancel", json={"cancellationReason": "Cancelled by agent"}
        )


def _data(body: dict[str, Any]) -> Any:
    if not isinstance(body, dict):
        raise ProviderError("calcom returned an unexpected body")
    if body.get("status") == "error":
        raise ProviderError(f"calcom error: {body.get('error') or body}")
    return body.get("data", [])


def _event_type_id(ref: CalendarRef) -> int:
    try:
        return int(ref.calendar_id)
    except ValueError:
        raise ProviderError(f"calcom calendar id must be an event type id, got {ref.calendar_id!r}") from None


def _record_from_booking(booking: dict[str, Any]) -> BookingRecord | None:
    try:
        status = str(booking.get("status", "accepted")).lower()
        if status in INACTIVE_STATUSES:
            return None
        uid = booking["uid"]
        start_at = parse_provider_datetime(booking["start"])
        end_at = parse_provider_datetime(booking["end"])
        attendees = tuple(
            Attendee(name=a.get("name") or "", email=a.get("email") or "")
            for a in booking.get("attendees") or []
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise ProviderError(f"calcom returned a booking of unexpected shape: {e!r}") from e
    if not start_at < end_at:
        return None
    return BookingRecord(
        event_id=uid,
        window=TimeWindow(start_at, end_at),
        subject=booking.get("title") or "",
        attendees=attendees,
        status=status,
        link=booking.get("meetingUrl") or "",
    )


def _event_from_booking(data: Any, fallback: TimeWindow) -> ProviderEvent:
    if isinstance(data, list):
        data = data[0] if data else {}
    if not isinstance(data, dict) or not data.get("uid"):
        raise ProviderError("calcom returned a booking without a uid")
    window = fallback
    if data.get("start") and data.get("end"):
        start_at, end_at = parse_provider_datetime(data["start"]), parse_provider_datetime(data["end"])
        if start_at < end_at:
            window = TimeWindow(start_at, end_at)
    return ProviderEvent(event_id=data["uid"], window=window, link=data.get("meetingUrl") or "")
