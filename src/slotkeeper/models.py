"""Core data models for slotkeeper."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from .errors import ConfigurationError, InvalidInputError

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class OutcomeKind(str, Enum):
    """Typed result of an availability check or booking attempt."""

    AVAILABLE = "available"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    INVALID_INPUT = "invalid_input"
    TOO_SOON = "too_soon"
    IN_THE_PAST = "in_the_past"
    OUT_OF_OFFICE_HOURS = "out_of_office_hours"
    CONFLICT = "conflict"
    CONFIGURATION_ERROR = "configuration_error"
    PROVIDER_ERROR = "provider_error"
    SLOTS = "slots"
    BOOKINGS = "bookings"


SUCCESS_KINDS = frozenset(
    {
        OutcomeKind.AVAILABLE,
        OutcomeKind.CONFIRMED,
        OutcomeKind.RESCHEDULED,
        OutcomeKind.CANCELLED,
        OutcomeKind.SLOTS,
        OutcomeKind.BOOKINGS,
    }
)


def _require_aware(value: datetime, label: str) -> None:
    if not isinstance(value, datetime):
        raise InvalidInputError(f"{label} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidInputError(f"{label} must be timezone-aware: {value.isoformat()}")


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end) between two aware instants."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        _require_aware(self.start, "start")
        _require_aware(self.end, "end")
        if not self.start < self.end:
            raise InvalidInputError(
                f"end must be after start ({self.start.isoformat()} >= {self.end.isoformat()})"
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: TimeWindow) -> bool:
        return self.start < other.end and other.start < self.end

    def format_in_tz(self, tz: ZoneInfo) -> str:
        """Format the window converted to the given timezone."""
        start_local = self.start.astimezone(tz)
        end_local = self.end.astimezone(tz)
        day = start_local.strftime("%A, %B %d")
        return f"{day} {start_local.strftime('%H:%M')}-{end_local.strftime('%H:%M')}"

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    def __str__(self) -> str:
        return f"{self.start.isoformat()}/{self.end.isoformat()}"


@dataclass(frozen=True)
class BusyInterval(TimeWindow):
    """An occupied range reported by the calendar collaborator."""

    event_id: str | None = None
    subject: str = ""


@dataclass(frozen=True)
class SlotCandidate:
    """A suggested window; nearer to the requested start means higher confidence."""

    window: TimeWindow
    confidence: float

    @property
    def start(self) -> datetime:
        return self.window.start

    @property
    def end(self) -> datetime:
        return self.window.end

    def to_dict(self, tz: ZoneInfo | None = None) -> dict[str, Any]:
        data: dict[str, Any] = self.window.to_dict()
        data["confidence"] = round(self.confidence, 4)
        if tz is not None:
            data["display"] = self.window.format_in_tz(tz)
        return data


def parse_hhmm(value: str, label: str = "time") -> time:
    """Parse 'HH:MM' into a time, raising ConfigurationError when malformed."""
    if isinstance(value, time):
        return value
    match = _HHMM.match(str(value).strip())
    if not match:
        raise ConfigurationError(f"Invalid {label} {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


@dataclass(frozen=True)
class DayHours:
    start: time = time(0, 0)
    end: time = time(0, 0)
    enabled: bool = False

    def label(self) -> str:
        return f"{self.start.strftime('%H:%M')}–{self.end.strftime('%H:%M')}"


@dataclass(frozen=True)
class WeeklyOfficeHours:
    """Per-weekday working window, interpreted in the agent's timezone."""

    days: dict[str, DayHours] = field(default_factory=dict)

    def __getitem__(self, weekday: str) -> DayHours:
        return self.days[weekday]

    def get(self, weekday: str) -> DayHours | None:
        return self.days.get(weekday)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any] | None) -> WeeklyOfficeHours:
        """Build from config data.

        Each weekday maps to ``{"start": "09:00", "end": "17:00", "enabled": true}``
        or to the ``"09:00-17:00"`` shorthand. Weekdays that are not listed are
        closed; unknown weekday names are a configuration error.
        """
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ConfigurationError("office_hours must be a mapping of weekday -> hours")

        days: dict[str, DayHours] = {}
        for key, value in raw.items():
            weekday = str(key).strip().lower()
            if weekday not in WEEKDAYS:
                raise ConfigurationError(f"Unknown weekday in office hours: {key!r}")
            days[weekday] = _parse_day(weekday, value)

        for weekday in WEEKDAYS:
            days.setdefault(weekday, DayHours())
        return cls(days=days)

    def validate(self) -> None:
        """Raise ConfigurationError unless every weekday is present and sane."""
        errors = []
        for key in self.days:
            if key not in WEEKDAYS:
                errors.append(f"unknown weekday {key!r}")
        for weekday in WEEKDAYS:
            day = self.days.get(weekday)
            if day is None:
                errors.append(f"missing entry for {weekday}")
            elif day.enabled and day.start >= day.end:
                errors.append(f"{weekday} start must be before end ({day.label()})")
        if errors:
            raise ConfigurationError("Invalid office hours: " + "; ".join(errors))

    def enabled_days(self) -> list[str]:
        return [d for d in WEEKDAYS if d in self.days and self.days[d].enabled]

    def to_dict(self) -> dict[str, str | None]:
        """Weekday -> "HH:MM-HH:MM", or None when closed."""
        data: dict[str, str | None] = {}
        for weekday in WEEKDAYS:
            day = self.days.get(weekday)
            if day is None or not day.enabled:
                data[weekday] = None
            else:
                data[weekday] = f"{day.start.strftime('%H:%M')}-{day.end.strftime('%H:%M')}"
        return data


def _parse_day(weekday: str, value: Any) -> DayHours:
    if value is None or value is False:
        return DayHours()
    if isinstance(value, list):
        if len(value) != 1:
            raise ConfigurationError(f"{weekday}: exactly one time range is supported, got {value!r}")
        value = value[0]
    if isinstance(value, str):
        try:
            start_str, end_str = value.strip().split("-")
        except ValueError:
            raise ConfigurationError(f"{weekday}: invalid range {value!r}, expected HH:MM-HH:MM") from None
        return DayHours(
            start=parse_hhmm(start_str, f"{weekday} start"),
            end=parse_hhmm(end_str, f"{weekday} end"),
            enabled=True,
        )
    if isinstance(value, dict):
        enabled = bool(value.get("enabled", True))
        start = value.get("start", "00:00")
        end = value.get("end", "00:00")
        return DayHours(
            start=parse_hhmm(start, f"{weekday} start"),
            end=parse_hhmm(end, f"{weekday} end"),
            enabled=enabled,
        )
    raise ConfigurationError(f"{weekday}: unsupported office hours value {value!r}")


@dataclass(frozen=True)
class CalendarRef:
    """Identifies one agent calendar on the external provider.

    ``watch_ids`` pairs the name of each watched calendar with this agent's
    calendar id on it, e.g. ``(("cal.com", "123456"),)``.
    """

    tenant_id: str
    calendar_id: str
    watch_ids: tuple[tuple[str, str], ...] = ()

    def cache_key(self) -> str:
        return f"{self.tenant_id}:{self.calendar_id}"

    def for_watch(self, name: str) -> CalendarRef | None:
        """The agent's calendar on the named watch calendar, if linked."""
        for watch_name, calendar_id in self.watch_ids:
            if watch_name == name:
                return CalendarRef(tenant_id=self.tenant_id, calendar_id=calendar_id)
        return None


@dataclass(frozen=True)
class AgentSchedule:
    """Working configuration for one agent, as returned by the directory."""

    tenant_id: str
    agent_id: str
    calendar_ref: CalendarRef
    hours: WeeklyOfficeHours
    timezone: str
    name: str = ""


@dataclass(frozen=True)
class Attendee:
    name: str = ""
    email: str = ""
    phone: str = ""


@dataclass
class BookingRequest:
    """One tool invocation's booking input. Never persisted by the engine."""

    tenant_id: str
    start: str | datetime
    end: str | datetime | None = None
    duration_minutes: int | None = None
    agent_id: str | None = None
    attendee: Attendee = field(default_factory=Attendee)
    subject: str = ""
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderEvent:
    """What a provider hands back after a successful write."""

    event_id: str
    window: TimeWindow
    link: str = ""


@dataclass(frozen=True)
class BookingRecord:
    """An event on an agent's calendar as listed by the provider.

    ``busy`` is False for events the calendar shows as free (tentative
    holds are busy, "free" and transparent events are not).
    """

    event_id: str
    window: TimeWindow
    subject: str = ""
    attendees: tuple[Attendee, ...] = ()
    status: str = "confirmed"
    busy: bool = True
    link: str = ""

    @property
    def start(self) -> datetime:
        return self.window.start

    @property
    def end(self) -> datetime:
        return self.window.end

    def as_busy(self) -> BusyInterval:
        return BusyInterval(start=self.start, end=self.end, event_id=self.event_id, subject=self.subject)

    def matches(self, text: str) -> bool:
        """Case-insensitive partial match on subject, attendee names and emails."""
        needle = text.strip().lower()
        if not needle:
            return True
        haystack = [self.subject] + [a.name for a in self.attendees] + [a.email for a in self.attendees]
        return any(needle in value.lower() for value in haystack if value)

    def to_dict(self, tz: ZoneInfo | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {"event_id": self.event_id, **self.window.to_dict()}
        if tz is not None:
            data["display"] = self.window.format_in_tz(tz)
        data["subject"] = self.subject
        data["status"] = self.status
        if self.attendees:
            data["attendees"] = [{"name": a.name, "email": a.email} for a in self.attendees]
        if self.link:
            data["link"] = self.link
        return data


@dataclass(frozen=True)
class AvailabilityVerdict:
    """Sole output of the slot search."""

    is_available: bool
    reason: str = ""
    alternatives: tuple[SlotCandidate, ...] = ()
    kind: OutcomeKind | None = None
    earliest_allowed: datetime | None = None


@dataclass(frozen=True)
class BookingOutcome:
    """Typed result returned across the orchestrator boundary."""

    kind: OutcomeKind
    message: str = ""
    window: TimeWindow | None = None
    event_id: str | None = None
    alternatives: tuple[SlotCandidate, ...] = ()
    earliest_allowed: datetime | None = None
    transient: bool = False
    stale: bool = False
    timezone: str = ""
    busy: tuple[BusyInterval, ...] = ()
    office_hours: WeeklyOfficeHours | None = None
    bookings: tuple[BookingRecord, ...] = ()

    @property
    def ok(self) -> bool:
        return self.kind in SUCCESS_KINDS

    def to_dict(self) -> dict[str, Any]:
        tz = ZoneInfo(self.timezone) if self.timezone else None
        data: dict[str, Any] = {"status": self.kind.value, "ok": self.ok}
        if self.message:
            data["message"] = self.message
        if self.window is not None:
            data.update(self.window.to_dict())
            if tz is not None:
                data["display"] = self.window.format_in_tz(tz)
        if self.event_id:
            data["event_id"] = self.event_id
        if self.earliest_allowed is not None:
            data["earliest_allowed"] = self.earliest_allowed.isoformat()
        if self.kind is OutcomeKind.PROVIDER_ERROR:
            data["transient"] = self.transient
        if self.stale:
            data["stale"] = True
        if self.kind is OutcomeKind.SLOTS:
            data["slots"] = [c.to_dict(tz) for c in self.alternatives]
            data["busy"] = [
                {**b.to_dict(), "subject": b.subject} if b.subject else b.to_dict() for b in self.busy
            ]
            if self.office_hours is not None:
                data["office_hours"] = self.office_hours.to_dict()
        elif self.alternatives or self.kind is OutcomeKind.CONFLICT:
            data["alternatives"] = [c.to_dict(tz) for c in self.alternatives]
        if self.kind is OutcomeKind.BOOKINGS:
            data["bookings"] = [b.to_dict(tz) for b in self.bookings]
        if self.timezone:
            data["timezone"] = self.timezone
        return data
