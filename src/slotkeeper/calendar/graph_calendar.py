"""Graph-style calendar provider (Microsoft 365 calendars)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import ProviderError
from ..models import Attendee, BookingRecord, BusyInterval, CalendarRef, ProviderEvent, TimeWindow
from ..timezone_resolver import windows_to_iana
from .http import HttpCalendarProvider, TokenSource, parse_provider_datetime, utc_iso

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
FREE_STATUSES = {"free", "workingElsewhere"}
EVENT_FIELDS = "id,subject,start,end,showAs,isCancelled,attendees,webLink"
PAGE_SIZE = 100


class GraphCalendarProvider(HttpCalendarProvider):
    """Busy times and bookings via ``calendarView``; writes via the ``events`` collection.

    ``CalendarRef.calendar_id`` is the mailbox (user principal name or id).
    Access tokens are supplied by the caller, as a string or an async callable.
    """

    name = "graph"

    def __init__(
        self,
        token: TokenSource,
        base_url: str = GRAPH_BASE_URL,
        client: httpx.AsyncClient | None = None,
        **kwargs,
    ):
        super().__init__(base_url, token, client=client, **kwargs)

    def extra_headers(self) -> dict[str, str]:
        return {"Prefer": 'outlook.timezone="UTC"'}

    def _calendar_path(self, ref: CalendarRef) -> str:
        return f"/users/{quote(ref.calendar_id)}/calendar"

    async def list_bookings(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BookingRecord]:
        """Expanded occurrences in [start, end), following ``@odata.nextLink`` pages."""
        params = {
            "startDateTime": utc_iso(start),
            "endDateTime": utc_iso(end),
            "$select": EVENT_FIELDS,
            "$orderby": "start/dateTime",
            "$top": PAGE_SIZE,
        }
        result = await self.request("GET", f"{self._calendar_path(ref)}/calendarView", params=params)

        records: list[BookingRecord] = []
        while True:
            if not isinstance(result, dict) or not isinstance(result.get("value", []), list):
                raise ProviderError(f"graph calendarView returned an unexpected body for {ref.calendar_id}")
            for item in result.get("value", []):
                record = _record_from_event(item)
                if record is not None:
                    records.append(record)
            next_link = result.get("@odata.nextLink")
            if not next_link:
                break
            result = await self.request("GET", next_link)

        logger.debug("Listed %d events for %s", len(records), ref.calendar_id)
        return records

    async def get_busy_times(self, ref: CalendarRef, start: datetime, end: datetime) -> list[BusyInterval]:
        busy = [r.as_busy() for r in await self.list_bookings(ref, start, end) if r.busy]
        logger.info("Found %d busy periods for %s", len(busy), ref.calendar_id)
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
        body: dict[str, Any] = {
            "subject": subject,
            "body": {"contentType": "text", "content": description},
            "start": _graph_time(window.start),
            "end": _graph_time(window.end),
            "isReminderOn": True,
        }
        if attendee.email:
            body["attendees"] = [
                {
                    "emailAddress": {"address": attendee.email, "name": attendee.name or attendee.email},
                    "type": "required",
                }
            ]
        if metadata and metadata.get("idempotency_key"):
            body["transactionId"] = str(metadata["idempotency_key"])

        created = await self.request("POST", f"{self._calendar_path(ref)}/events", json=body)
        return _event_from_response(created, window)

    async def update_event(
        self,
        ref: CalendarRef,
        event_id: str,
        window: TimeWindow,
        subject: str | None = None,
        description: str | None = None,
    ) -> ProviderEvent:
        body: dict[str, Any] = {"start": _graph_time(window.start), "end": _graph_time(window.end)}
        if subject is not None:
            body["subject"] = subject
        if description is not None:
            body["body"] = {"contentType": "text", "content": description}
        updated = await self.request(
            "PATCH", f"{self._calendar_path(ref)}/events/{quote(event_id)}", json=body
        )
        return _event_from_response(updated, window, event_id)

    async def delete_event(self, ref: CalendarRef, event_id: str) -> None:
        await self.request("DELETE", f"{self._calendar_path(ref)}/events/{quote(event_id)}")


def _graph_time(value: datetime) -> dict[str, str]:
    utc = value.astimezone(timezone.utc)
    return {"dateTime": utc.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": "UTC"}


def _parse_graph_time(value: dict[str, Any]) -> datetime:
    return parse_provider_datetime(value["dateTime"], windows_to_iana(value.get("timeZone") or "UTC"))


def _record_from_event(item: dict[str, Any]) -> BookingRecord | None:
    try:
        if item.get("isCancelled"):
            return None
        event_id = item["id"]
        start_at = _parse_graph_time(item["start"])
        end_at = _parse_graph_time(item["end"])
        attendees = tuple(
            Attendee(
                name=a["emailAddress"].get("name") or "",
                email=a["emailAddress"].get("address") or "",
            )
            for a in item.get("attendees") or []
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise ProviderError(f"graph returned an event of unexpected shape: {e!r}") from e
    if not start_at < end_at:
        return None
    show_as = item.get("showAs") or "busy"
    return BookingRecord(
        event_id=event_id,
        window=TimeWindow(start_at, end_at),
        subject=item.get("subject") or "",
        attendees=attendees,
        status=show_as,
        busy=show_as not in FREE_STATUSES,
        link=item.get("webLink") or "",
    )


def _event_from_response(data: dict[str, Any], fallback: TimeWindow, event_id: str | None = None) -> ProviderEvent:
    try:
        event_id = data.get("id") or event_id
        window = fallback
        if data.get("start") and data.get("end"):
            start_at, end_at = _parse_graph_time(data["start"]), _parse_graph_time(data["end"])
            if start_at < end_at:
                window = TimeWindow(start_at, end_at)
        link = data.get("webLink") or ""
    except (KeyError, TypeError, AttributeError) as e:
        raise ProviderError(f"graph returned an event of unexpected shape: {e!r}") from e
    if not event_id:
        raise ProviderError("graph returned an event without an id")
    return ProviderEvent(event_id=event_id, window=window, link=link)
