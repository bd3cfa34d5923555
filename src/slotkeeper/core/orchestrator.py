"""Booking orchestrator: validate, check availability, then create.

Each call is a single pass through Validating -> CheckingAvailability ->
Creating with no state kept between calls. Every failure comes back as a
typed ``BookingOutcome``; nothing is raised across this boundary.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from ..calendar.base import CalendarProvider
from ..clock import Clock, SystemClock
from ..config import SearchConfig
from ..directory import AgentDirectory
from ..errors import (
    ConfigurationError,
    InvalidInputError,
    ProviderConflictError,
    ProviderError,
    ProviderTimeoutError,
)
from ..models import (
    AgentSchedule,
    AvailabilityVerdict,
    BookingOutcome,
    BookingRequest,
    OutcomeKind,
    TimeWindow,
)
from .normalizer import normalize
from .slot_search import find_slots, list_slots
from .validation import clean_attendee, ensure_valid

logger = logging.getLogger(__name__)

STALE_MESSAGE = "slot was taken on the calendar before the booking could be created"
MAX_LIST_RANGE_DAYS = 31
DEFAULT_SEARCH_DAYS = 30


@dataclass(frozen=True)
class _Assessment:
    schedule: AgentSchedule
    window: TimeWindow
    verdict: AvailabilityVerdict


class BookingOrchestrator:
    """Runs booking tools against one calendar collaborator and one directory."""

    def __init__(
        self,
        calendar: CalendarProvider,
        directory: AgentDirectory,
        clock: Clock | None = None,
        settings: SearchConfig | None = None,
    ):
        self.calendar = calendar
        self.directory = directory
        self.clock = clock or SystemClock()
        self.settings = settings or SearchConfig()

    # --- Public operations ---

    async def check_availability(self, request: BookingRequest, ignore_event_id: str | None = None) -> BookingOutcome:
        """Validate and check a window without creating anything.

        ``ignore_event_id`` checks the window as if that event were already
        moved out of the way, which is how a reschedule is assessed.
        """

        async def run(deadline: float) -> BookingOutcome:
            assessment = await self._assess(
                request, deadline, require_attendee=False, ignore_event_id=ignore_event_id
            )
            if not assessment.verdict.is_available:
                return self._refused(assessment)
            return BookingOutcome(
                kind=OutcomeKind.AVAILABLE,
                message="requested window is available",
                window=assessment.window,
                timezone=assessment.schedule.timezone,
            )

        return await self._guarded("check_availability", run)

    async def book(self, request: BookingRequest) -> BookingOutcome:
        async def run(deadline: float) -> BookingOutcome:
            assessment = await self._assess(request, deadline)
            if not assessment.verdict.is_available:
                return self._refused(assessment)

            schedule = assessment.schedule
            try:
                event = await self._bounded(
                    deadline,
                    self.calendar.create_event,
                    schedule.calendar_ref,
                    assessment.window,
                    clean_attendee(request.attendee),
                    self._subject(request),
                    request.description,
                    request.metadata,
                )
            except ProviderConflictError as e:
                logger.warning("Provider rejected booking on %s as a conflict: %s", schedule.calendar_ref.cache_key(), e)
                return self._stale(assessment)

            logger.info("Booked %s on %s as %s", event.window, schedule.calendar_ref.cache_key(), event.event_id)
            return BookingOutcome(
                kind=OutcomeKind.CONFIRMED,
                message="appointment booked",
                window=event.window,
                event_id=event.event_id,
                timezone=schedule.timezone,
            )

        return await self._guarded("book", run)

    async def reschedule(self, request: BookingRequest, event_id: str) -> BookingOutcome:
        """Move an existing event; its own busy interval does not count as a conflict."""

        async def run(deadline: float) -> BookingOutcome:
            if not event_id:
                raise InvalidInputError("event_id is required")
            assessment = await self._assess(request, deadline, require_attendee=False, ignore_event_id=event_id)
            if not assessment.verdict.is_available:
                return self._refused(assessment)

            schedule = assessment.schedule
            try:
                event = await self._bounded(
                    deadline,
                    self.calendar.update_event,
                    schedule.calendar_ref,
                    event_id,
                    assessment.window,
                    request.subject or None,
                    request.description or None,
                )
            except ProviderConflictError as e:
                logger.warning("Provider rejected reschedule of %s as a conflict: %s", event_id, e)
                return self._stale(assessment)

            logger.info("Rescheduled %s to %s", event_id, event.window)
            return BookingOutcome(
                kind=OutcomeKind.RESCHEDULED,
                message="appointment rescheduled",
                window=event.window,
                event_id=event.event_id,
                timezone=schedule.timezone,
            )

        return await self._guarded("reschedule", run)

    async def cancel(self, tenant_id: str, event_id: str, agent_id: str | None = None) -> BookingOutcome:
        async def run(deadline: float) -> BookingOutcome:
            if not tenant_id or not event_id:
                raise InvalidInputError("tenant_id and event_id are required")
            schedule = await self._bounded(deadline, self.directory.get_agent_schedule, tenant_id, agent_id)
            await self._bounded(deadline, self.calendar.delete_event, schedule.calendar_ref, event_id)
            logger.info("Cancelled %s on %s", event_id, schedule.calendar_ref.cache_key())
            return BookingOutcome(
                kind=OutcomeKind.CANCELLED,
                message="appointment cancelled",
                event_id=event_id,
                timezone=schedule.timezone,
            )

        return await self._guarded("cancel", run)

    async def list_available_slots(
        self,
        tenant_id: str,
        start: str | datetime,
        end: str | datetime,
        duration_minutes: int | None = None,
        agent_id: str | None = None,
        max_slots: int | None = None,
        ignore_event_id: str | None = None,
    ) -> BookingOutcome:
        """Bookable slots in a date range, with the busy periods and office hours behind them.

        The range is capped at 31 days. ``ignore_event_id`` lists slots as if
        that event were free, for picking a new time for an existing booking.
        """

        async def run(deadline: float) -> BookingOutcome:
            if not tenant_id:
                raise InvalidInputError("tenant_id is required")
            schedule = await self._bounded(deadline, self.directory.get_agent_schedule, tenant_id, agent_id)
            lead_minutes = await self._bounded(deadline, self.directory.get_minimum_lead_minutes, tenant_id)
            within = self._range(start, end, schedule.timezone, MAX_LIST_RANGE_DAYS)

            minutes = duration_minutes if duration_minutes is not None else self.settings.default_duration_minutes
            if not self.settings.min_duration_minutes <= minutes <= self.settings.max_duration_minutes:
                raise InvalidInputError(
                    f"duration must be between {self.settings.min_duration_minutes} "
                    f"and {self.settings.max_duration_minutes} minutes"
                )
            limit = max_slots if max_slots is not None else self.settings.max_listed_slots
            if limit <= 0:
                raise InvalidInputError("max_slots must be positive")

            busy = await self._bounded(
                deadline, self.calendar.get_busy_times, schedule.calendar_ref, within.start, within.end
            )
            slots = list_slots(
                within=within,
                duration_minutes=minutes,
                hours=schedule.hours,
                tz=schedule.timezone,
                busy=busy,
                now=self.clock.now(),
                min_lead_minutes=lead_minutes,
                max_slots=min(limit, self.settings.max_listed_slots),
                step_minutes=self.settings.step_minutes,
                ignore_event_id=ignore_event_id,
            )
            busy_in_range = tuple(
                b for b in busy
                if b.overlaps(within) and not (ignore_event_id and b.event_id == ignore_event_id)
            )
            logger.info("Listed %d slot(s) for %s in %s", len(slots), schedule.calendar_ref.cache_key(), within)
            return BookingOutcome(
                kind=OutcomeKind.SLOTS,
                message=f"{len(slots)} slot(s) available" if slots else "no slots found in range",
                window=within,
                alternatives=tuple(slots),
                busy=busy_in_range,
                office_hours=schedule.hours,
                timezone=schedule.timezone,
            )

        return await self._guarded("list_available_slots", run)

    async def search_bookings(
        self,
        tenant_id: str,
        text: str = "",
        start: str | datetime | None = None,
        end: str | datetime | None = None,
        agent_id: str | None = None,
    ) -> BookingOutcome:
        """Bookings on the agent's calendar whose subject or attendees match ``text``.

        Without a range, searches from now to 30 days ahead.
        """

        async def run(deadline: float) -> BookingOutcome:
            if not tenant_id:
                raise InvalidInputError("tenant_id is required")
            schedule = await self._bounded(deadline, self.directory.get_agent_schedule, tenant_id, agent_id)
            now = self.clock.now()
            range_start = start if start is not None else now
            range_end = end if end is not None else normalize(range_start, schedule.timezone) + timedelta(
                days=DEFAULT_SEARCH_DAYS
            )
            within = self._range(range_start, range_end, schedule.timezone)

            records = await self._bounded(
                deadline, self.calendar.list_bookings, schedule.calendar_ref, within.start, within.end
            )
            found = tuple(r for r in records if r.matches(text or ""))
            logger.info("Found %d booking(s) matching %r on %s", len(found), text, schedule.calendar_ref.cache_key())
            return BookingOutcome(
                kind=OutcomeKind.BOOKINGS,
                message=f"{len(found)} booking(s) found",
                window=within,
                bookings=found,
                timezone=schedule.timezone,
            )

        return await self._guarded("search_bookings", run)

    async def aclose(self) -> None:
        """Close the calendar collaborator's connections."""
        await self.calendar.aclose()

    # --- States ---

    async def _assess(
        self,
        request: BookingRequest,
        deadline: float,
        require_attendee: bool = True,
        ignore_event_id: str | None = None,
    ) -> _Assessment:
        # Validating
        ensure_valid(request, require_attendee=require_attendee)
        schedule = await self._bounded(deadline, self.directory.get_agent_schedule, request.tenant_id, request.agent_id)
        lead_minutes = await self._bounded(deadline, self.directory.get_minimum_lead_minutes, request.tenant_id)
        window = self._requested_window(request, schedule.timezone)

        # CheckingAvailability
        now = self.clock.now()
        fetch_start, fetch_end = self._fetch_range(window, now, lead_minutes)
        busy = await self._bounded(
            deadline, self.calendar.get_busy_times, schedule.calendar_ref, fetch_start, fetch_end
        )
        verdict = find_slots(
            requested=window,
            hours=schedule.hours,
            tz=schedule.timezone,
            busy=busy,
            now=now,
            min_lead_minutes=lead_minutes,
            max_suggestions=self.settings.max_suggestions,
            step_minutes=self.settings.step_minutes,
            horizon_days=self.settings.horizon_days,
            ignore_event_id=ignore_event_id,
        )
        return _Assessment(schedule=schedule, window=window, verdict=verdict)

    def _requested_window(self, request: BookingRequest, tz: str) -> TimeWindow:
        start = normalize(request.start, tz)
        if request.end is not None:
            end = normalize(request.end, tz)
        else:
            minutes = request.duration_minutes
            if minutes is None:
                minutes = self.settings.default_duration_minutes
            if minutes <= 0:
                raise InvalidInputError("duration_minutes must be positive")
            end = start + timedelta(minutes=minutes)
        if end <= start:
            raise InvalidInputError("end must be after start")

        minutes = (end - start).total_seconds() / 60
        if minutes < self.settings.min_duration_minutes:
            raise InvalidInputError(f"duration must be at least {self.settings.min_duration_minutes} minutes")
        if minutes > self.settings.max_duration_minutes:
            raise InvalidInputError(f"duration must be at most {self.settings.max_duration_minutes} minutes")
        return TimeWindow(start, end)

    @staticmethod
    def _range(start: str | datetime, end: str | datetime, tz: str, max_days: int | None = None) -> TimeWindow:
        if start is None or start == "" or end is None or end == "":
            raise InvalidInputError("start and end are required")
        range_start, range_end = normalize(start, tz), normalize(end, tz)
        if range_end <= range_start:
            raise InvalidInputError("end must be after start")
        if max_days is not None and range_end - range_start > timedelta(days=max_days):
            raise InvalidInputError(f"date range must be at most {max_days} days")
        return TimeWindow(range_start, range_end)

    def _fetch_range(self, window: TimeWindow, now: datetime, lead_minutes: int) -> tuple[datetime, datetime]:
        """UTC-day-aligned range from the day before the request to the end of the scan."""
        scan_from = max(window.start, now + timedelta(minutes=lead_minutes))
        scan_to = scan_from + timedelta(days=self.settings.horizon_days) + window.duration
        start = (window.start - timedelta(days=1)).astimezone(timezone.utc)
        start = start.replace(hour=0, minute=0, second=0, microsecond=0)
        end = scan_to.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        return start, end + timedelta(days=1)

    # --- Helpers ---

    @staticmethod
    def _subject(request: BookingRequest) -> str:
        subject = (request.subject or "").strip()
        if subject:
            return subject
        name = clean_attendee(request.attendee).name
        return f"Appointment with {name}" if name else "Appointment"

    @staticmethod
    def _refused(assessment: _Assessment) -> BookingOutcome:
        verdict = assessment.verdict
        return BookingOutcome(
            kind=verdict.kind or OutcomeKind.CONFLICT,
            message=verdict.reason,
            window=assessment.window,
            alternatives=verdict.alternatives,
            earliest_allowed=verdict.earliest_allowed,
            timezone=assessment.schedule.timezone,
        )

    @staticmethod
    def _stale(assessment: _Assessment) -> BookingOutcome:
        return BookingOutcome(
            kind=OutcomeKind.CONFLICT,
            message=STALE_MESSAGE,
            window=assessment.window,
            stale=True,
            timezone=assessment.schedule.timezone,
        )

    async def _bounded(self, deadline: float, fn: Callable[..., Awaitable[Any]], *args) -> Any:
        """Await a collaborator call within what is left of the request deadline."""
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise ProviderTimeoutError()
        try:
            return await asyncio.wait_for(fn(*args), timeout=remaining)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError() from None

    async def _guarded(self, operation: str, run: Callable[[float], Awaitable[BookingOutcome]]) -> BookingOutcome:
        """Map every failure of ``run`` onto a typed outcome."""
        deadline = asyncio.get_running_loop().time() + self.settings.request_timeout_seconds
        try:
            outcome = await run(deadline)
        except InvalidInputError as e:
            logger.info("%s rejected: invalid input: %s", operation, e)
            return BookingOutcome(kind=OutcomeKind.INVALID_INPUT, message=str(e))
        except ConfigurationError as e:
            logger.error("%s failed: configuration error: %s", operation, e)
            return BookingOutcome(kind=OutcomeKind.CONFIGURATION_ERROR, message=str(e))
        except ProviderError as e:
            logger.warning("%s failed: provider error: %s", operation, e)
            return BookingOutcome(kind=OutcomeKind.PROVIDER_ERROR, message=str(e), transient=e.transient)
        except NotImplementedError as e:
            return BookingOutcome(kind=OutcomeKind.PROVIDER_ERROR, message=str(e))
        except Exception as e:
            logger.exception("%s failed: unexpected error", operation)
            return BookingOutcome(kind=OutcomeKind.PROVIDER_ERROR, message=str(e) or type(e).__name__)

        if not outcome.ok:
            logger.info("%s refused: %s (%s)", operation, outcome.kind.value, outcome.message)
        return outcome
