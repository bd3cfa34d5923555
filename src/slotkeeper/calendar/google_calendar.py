"""Google Calendar provider implementation."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timezone
from typing import Any
from zoneinfo import ZoneInfo

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import CalendarConfig
from ..errors import ProviderConflictError, ProviderError
from ..models import Attendee, BookingRecord, BusyInterval, CalendarRef, ProviderEvent, TimeWindow
from ..retry import TRANSIENT_HTTP_CODES, retry_async
from .base import CalendarProvider
from .http import parse_provider_datetime

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]
PAGE_SIZE = 250


class GoogleCalendarProvider(CalendarProvider):
    """Google Calendar API integration.

    ``CalendarRef.calendar_id`` is the Google calendar id (an email address
    or ``primary``). Blocking client calls run in a worker thread.
    """

    def __init__(self, config: CalendarConfig, service=None):
        self.config = config
        self._service = service
        self._owns_service = service is None

    @property
    def service(self):
        if not self._service:
            from google.oauth2 import service_account

            creds = service_account.Credentials.from_service_account_file(
                self.config.credentials_path, scopes=SCOPES
            )
            self._service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        return self._service

    async def _execute(self, request, label: str) -> dict:
        try:
            return await retry_async(
                asyncio.to_thread,
                request.execute,
                max_retries=self.config.max_retries,
                label=label,
            )
        except HttpError as e:
            status = int(e.resp.get("status", 0))
            if status == 409:
                raise ProviderConflictError(f"{label}: {e}") from e
            raise ProviderError(f"{label} failed: {e}", transient=status in TRANSIENT_HTTP_CODES, status=status) from e

    async def list_bookings(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BookingRecord]:
        """Single occurrences in [start, end) from the events list, all pages."""
        records: list[BookingRecord] = []
        page_token = None
        while True:
            result = await self._execute(
                self.service.events().list(
                    calendarId=ref.calendar_id,
                    timeMin=start.astimezone(timezone.utc).isoformat(),
                    timeMax=end.astimezone(timezone.utc).isoformat(),
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=PAGE_SIZE,
                    pageToken=page_token,
                ),
                "google.list_events",
            )
            if not isinstance(result, dict):
                raise ProviderError(f"google events list returned an unexpected body for {ref.calendar_id}")
            calendar_tz = result.get("timeZone") or "UTC"
            for item in result.get("items") or []:
                record = _record_from_event(item, calendar_tz)
                if record is not None:
                    records.append(record)
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(records)} events for {ref.calendar_id}")
        return records

    async def get_busy_times(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BusyInterval]:
        busy_slots = [r.as_busy() for r in await self.list_bookings(ref, start, end) if r.busy]
        logger.info(f"Found {len(busy_slots)} busy periods for {ref.calendar_id}")
        return busy_slots

    async def create_event(
        self,
        ref: CalendarRef,
        window: TimeWindow,
        attendee: Attendee,
        subject: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ProviderEvent:
        event_body: dict = {
            "summary": subject,
            "description": description,
            "start": {"dateTime": window.start.astimezone(timezone.utc).isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": window.end.astimezone(timezone.utc).isoformat(), "timeZone": "UTC"},
        }
        if attendee.email:
            event_body["attendees"] = [{"email": attendee.email, "displayName": attendee.name}]
        if metadata:
            event_body["extendedProperties"] = {"private": {str(k): str(v) for k, v in metadata.items()}}

        created = await self._execute(
            self.service.events().insert(calendarId=ref.calendar_id, body=event_body, sendUpdates="all"),
            "google.create_event",
        )
        logger.info(f"Created event: {created.get('htmlLink')}")
        return _event_from_response(created, window)

    async def update_event(
        self,
        ref: CalendarRef,
        event_id: str,
        window: TimeWindow,
        subject: str | None = None,
        description: str | None = None,
    ) -> ProviderEvent:
        patch: dict = {
            "start": {"dateTime": window.start.astimezone(timezone.utc).isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": window.end.astimezone(timezone.utc).isoformat(), "timeZone": "UTC"},
        }
        if subject is not None:
            patch["summary"] = subject
        if description is not None:
            patch["description"] = description
        updated = await self._execute(
            self.service.events().patch(calendarId=ref.calendar_id, eventId=event_id, body=patch),
            "google.update_event",
        )
        return _event_from_response(updated, window, event_id)

    async def delete_event(self, ref: CalendarRef, event_id: str) -> None:
        await self._execute(
            self.service.events().delete(calendarId=ref.calendar_id, eventId=event_id),
            "google.delete_event",
        )

    async def aclose(self) -> None:
        """Close the HTTP connections of a service this provider built."""
        if self._owns_service and self._service is not None:
            service, self._service = self._service, None
            await asyncio.to_thread(service.close)


def _parse_event_time(value: dict, calendar_tz: str) -> datetime:
    if value.get("dateTime"):
        return parse_provider_datetime(value["dateTime"])
    # All-day events run from local midnight in the calendar's timezone
    day = date.fromisoformat(value["date"])
    return datetime.combine(day, time(0, 0), tzinfo=ZoneInfo(calendar_tz)).astimezone(timezone.utc)


def _record_from_event(item: dict, calendar_tz: str) -> BookingRecord | None:
    try:
        status = item.get("status") or "confirmed"
        if status == "cancelled":
            return None
        event_id = item["id"]
        start_at = _parse_event_time(item["start"], calendar_tz)
        end_at = _parse_event_time(item["end"], calendar_tz)
        attendees = tuple(
            Attendee(name=a.get("displayName") or "", email=a.get("email") or "")
            for a in item.get("attendees") or []
        )
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise ProviderError(f"google returned an event of unexpected shape: {e!r}") from e
    if not start_at < end_at:
        return None
    return BookingRecord(
        event_id=event_id,
        window=TimeWindow(start_at, end_at),
        subject=item.get("summary") or "",
        attendees=attendees,
        status=status,
        busy=item.get("transparency") != "transparent",
        link=item.get("htmlLink") or "",
    )


def _event_from_response(data: dict, fallback: TimeWindow, event_id: str | None = None) -> ProviderEvent:
    try:
        window = fallback
        start = data.get("start", {}).get("dateTime")
        end = data.get("end", {}).get("dateTime")
        if start and end:
            start_at, end_at = parse_provider_datetime(start), parse_provider_datetime(end)
            if start_at < end_at:
                window = TimeWindow(start_at, end_at)
        event_id = data.get("id") or event_id
        link = data.get("htmlLink") or ""
    except (TypeError, AttributeError) as e:
        raise ProviderError(f"google returned an event of unexpected shape: {e!r}") from e
    if not event_id:
        raise ProviderError("google returned an event without an id")
    return ProviderEvent(event_id=event_id, window=window, link=link)
