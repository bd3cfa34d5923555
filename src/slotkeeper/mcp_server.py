"""MCP server for slotkeeper: exposes booking tools for AI agents."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from .config import Config
from .core.orchestrator import BookingOrchestrator
from .models import Attendee, BookingRequest

logger = logging.getLogger(__name__)


def _request(
    tenant_id: str,
    start: str,
    end: Optional[str],
    duration_minutes: Optional[int],
    agent_id: Optional[str],
    attendee_name: str = "",
    attendee_email: str = "",
    attendee_phone: str = "",
    subject: str = "",
    description: str = "",
) -> BookingRequest:
    return BookingRequest(
        tenant_id=tenant_id,
        start=start,
        end=end or None,
        duration_minutes=duration_minutes,
        agent_id=agent_id or None,
        attendee=Attendee(name=attendee_name, email=attendee_email, phone=attendee_phone),
        subject=subject,
        description=description,
        metadata={"source": "mcp"},
    )


def _closing_lifespan(orchestrator: BookingOrchestrator):
    """Lifespan that closes the orchestrator's connections once the last session ends."""
    open_sessions = 0

    @asynccontextmanager
    async def lifespan(server):
        nonlocal open_sessions
        open_sessions += 1
        try:
            yield {}
        finally:
            open_sessions -= 1
            if open_sessions == 0:
                logger.debug("Last MCP session ended, closing calendar connections")
                await orchestrator.aclose()

    return lifespan


def create_mcp_server(config: Config, orchestrator: BookingOrchestrator):
    """Create and configure the MCP server with booking tools."""
    from mcp.server.fastmcp import FastMCP

    tenants = ", ".join(sorted(config.tenants)) or "none configured"
    mcp = FastMCP(
        "slotkeeper",
        instructions="Check availability and book, reschedule or cancel appointments "
        f"on agents' calendars. Tenants: {tenants}. "
        "Times are ISO-8601; times without an offset are read in the agent's timezone. "
        "When a slot is refused, offer the returned alternatives. "
        "Use list_available_slots to offer times across a date range and search_bookings "
        "to find an existing appointment by name, email or subject.",
        streamable_http_path=config.mcp.path,
        host=config.mcp.host,
        port=config.mcp.port,
        lifespan=_closing_lifespan(orchestrator),
    )

    @mcp.tool()
    async def check_availability(
        tenant_id: str,
        start: str,
        end: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        agent_id: Optional[str] = None,
    ) -> dict:
        """Check whether a time window is free, without booking it.

        Args:
            tenant_id: Tenant (client business) the agent belongs to.
            start: Requested start, ISO-8601 (e.g. 2025-03-11T10:00 or 2025-03-11T10:00:00+11:00).
            end: Requested end. Give either end or duration_minutes.
            duration_minutes: Appointment length. Defaults to the configured duration.
            agent_id: Agent whose calendar to check. Defaults to the tenant's default agent.
        """
        request = _request(tenant_id, start, end, duration_minutes, agent_id)
        outcome = await orchestrator.check_availability(request)
        return outcome.to_dict()

    @mcp.tool()
    async def book_appointment(
        tenant_id: str,
        start: str,
        attendee_name: str,
        attendee_email: str = "",
        attendee_phone: str = "",
        subject: str = "",
        description: str = "",
        end: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        agent_id: Optional[str] = None,
    ) -> dict:
        """Book an appointment if the window is free; otherwise returns alternatives.

        Args:
            tenant_id: Tenant (client business) the agent belongs to.
            start: Requested start, ISO-8601.
            attendee_name: Full name of the person booking.
            attendee_email: Email address of the person booking.
            attendee_phone: Phone number of the person booking.
            subject: Appointment subject (3-255 characters). Defaults to "Appointment with <name>".
            description: Free-text notes for the calendar event.
            end: Requested end. Give either end or duration_minutes.
            duration_minutes: Appointment length. Defaults to the configured duration.
            agent_id: Agent to book with. Defaults to the tenant's default agent.
        """
        request = _request(
            tenant_id, start, end, duration_minutes, agent_id,
            attendee_name, attendee_email, attendee_phone, subject, description,
        )
        if config.dry_run:
            outcome = await orchestrator.check_availability(request)
            result = outcome.to_dict()
            result["dry_run"] = True
            return result
        outcome = await orchestrator.book(request)
        return outcome.to_dict()

    @mcp.tool()
    async def reschedule_appointment(
        tenant_id: str,
        event_id: str,
        start: str,
        end: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        agent_id: Optional[str] = None,
        subject: str = "",
    ) -> dict:
        """Move an existing appointment to a new time.

        Args:
            tenant_id: Tenant (client business) the agent belongs to.
            event_id: Event id returned by book_appointment.
            start: New start, ISO-8601.
            end: New end. Give either end or duration_minutes.
            duration_minutes: Appointment length. Defaults to the configured duration.
            agent_id: Agent the appointment is booked with.
            subject: New subject, if it should change.
        """
        request = _request(tenant_id, start, end, duration_minutes, agent_id, subject=subject)
        if config.dry_run:
            outcome = await orchestrator.check_availability(request, ignore_event_id=event_id)
            result = outcome.to_dict()
            result["dry_run"] = True
            return result
        outcome = await orchestrator.reschedule(request, event_id)
        return outcome.to_dict()

    @mcp.tool()
    async def cancel_appointment(
        tenant_id: str,
        event_id: str,
        agent_id: Optional[str] = None,
    ) -> dict:
        """Cancel an appointment and remove it from the agent's calendar.

        Args:
            tenant_id: Tenant (client business) the agent belongs to.
            event_id: Event id returned by book_appointment.
            agent_id: Agent the appointment is booked with.
        """
        if config.dry_run:
            return {"status": "cancelled", "ok": True, "event_id": event_id, "dry_run": True}
        outcome = await orchestrator.cancel(tenant_id, event_id, agent_id)
        return outcome.to_dict()

    @mcp.tool()
    async def list_available_slots(
        tenant_id: str,
        start: str,
        end: str,
        duration_minutes: Optional[int] = None,
        agent_id: Optional[str] = None,
        max_slots: Optional[int] = None,
        reschedule_event_id: Optional[str] = None,
    ) -> dict:
        """List bookable slots in a date range, plus the busy periods and office hours.

        Args:
            tenant_id: Tenant (client business) the agent belongs to.
            start: Range start, ISO-8601.
            end: Range end, ISO-8601. At most 31 days after start.
            duration_minutes: Slot length. Defaults to the configured duration.
            agent_id: Agent whose calendar to list. Defaults to the tenant's default agent.
            max_slots: Maximum number of slots to return.
            reschedule_event_id: When picking a new time for an existing appointment,
                its event id, so its current slot counts as free.
        """
        outcome = await orchestrator.list_available_slots(
            tenant_id, start, end, duration_minutes, agent_id or None, max_slots, reschedule_event_id or None
        )
        return outcome.to_dict()

    @mcp.tool()
    async def search_bookings(
        tenant_id: str,
        query: str = "",
        start: Optional[str] = None,
        end: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> dict:
        """Find existing appointments by subject, attendee name or attendee email.

        Args:
            tenant_id: Tenant (client business) the agent belongs to.
            query: Text to match (case-insensitive, partial). Empty lists every booking.
            start: Range start, ISO-8601. Defaults to now.
            end: Range end, ISO-8601. Defaults to 30 days after start.
            agent_id: Agent whose calendar to search. Defaults to the tenant's default agent.
        """
        outcome = await orchestrator.search_bookings(tenant_id, query, start or None, end or None, agent_id or None)
        return outcome.to_dict()

    logger.info("MCP server created with %d tenant(s)", len(config.tenants))
    return mcp
