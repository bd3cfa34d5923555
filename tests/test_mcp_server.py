"""Tests for the MCP tool surface."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from slotkeeper.calendar.memory import InMemoryCalendarProvider
from slotkeeper.clock import FixedClock
from slotkeeper.config import parse_config
from slotkeeper.core.orchestrator import BookingOrchestrator
from slotkeeper.directory import ConfigDirectory
from slotkeeper.mcp_server import _closing_lifespan, _request, create_mcp_server
from slotkeeper.models import CalendarRef

JANE = CalendarRef("acme", "jane")


def utc(day: int, hour: int, minute: int = 0) -> datetime:
    # January 2030: the 7th is a Monday
    return datetime(2030, 1, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def config():
    return parse_config({
        "tenants": {"acme": {"agents": {"jane": {"office_hours": {"monday": "09:00-17:00"}}}}},
        "mcp": {"path": "/mcp", "port": 8123},
    })


@pytest.fixture
def calendar():
    return InMemoryCalendarProvider()


@pytest.fixture
def orchestrator(config, calendar):
    return BookingOrchestrator(calendar, ConfigDirectory(config), clock=FixedClock(utc(6, 12)))


def tool(mcp, name):
    return mcp._tool_manager.get_tool(name).fn


@pytest.mark.asyncio
async def test_tools_registered(config, orchestrator):
    mcp = create_mcp_server(config, orchestrator)
    names = {tool.name for tool in await mcp.list_tools()}
    assert names == {
        "check_availability",
        "book_appointment",
        "reschedule_appointment",
        "cancel_appointment",
        "list_available_slots",
        "search_bookings",
    }


def test_request_mapping():
    request = _request(
        "acme", "2025-03-11T10:00", "", 30, "",
        attendee_name="Sam Buyer", attendee_email="sam@example.com", subject="Viewing",
    )
    assert request.end is None
    assert request.agent_id is None
    assert request.duration_minutes == 30
    assert request.attendee.email == "sam@example.com"
    assert request.metadata == {"source": "mcp"}


@pytest.mark.asyncio
async def test_dry_run_reschedule_ignores_the_moved_event(config, orchestrator, calendar):
    event_id = calendar.add_busy(JANE, utc(7, 10), utc(7, 11), subject="Viewing")
    config.dry_run = True
    mcp = create_mcp_server(config, orchestrator)

    result = await tool(mcp, "reschedule_appointment")(
        tenant_id="acme", event_id=event_id, start="2030-01-07T10:30", duration_minutes=60
    )
    assert result["status"] == "available"
    assert result["dry_run"] is True
    assert calendar.events(JANE)[0].start == utc(7, 10)


@pytest.mark.asyncio
async def test_list_available_slots_tool(config, orchestrator, calendar):
    calendar.add_busy(JANE, utc(7, 10), utc(7, 16), subject="Open home")
    mcp = create_mcp_server(config, orchestrator)

    result = await tool(mcp, "list_available_slots")(
        tenant_id="acme", start="2030-01-07T09:00", end="2030-01-07T17:00", duration_minutes=60
    )
    assert result["status"] == "slots"
    assert [s["start"] for s in result["slots"]] == ["2030-01-07T09:00:00+00:00", "2030-01-07T16:00:00+00:00"]
    assert result["busy"][0]["subject"] == "Open home"
    assert result["office_hours"]["monday"] == "09:00-17:00"


@pytest.mark.asyncio
async def test_search_bookings_tool(config, orchestrator):
    mcp = create_mcp_server(config, orchestrator)
    booked = await tool(mcp, "book_appointment")(
        tenant_id="acme", start="2030-01-07T10:00", attendee_name="Sam Buyer",
        attendee_email="sam@example.com", subject="Viewing", duration_minutes=30,
    )
    assert booked["status"] == "confirmed"

    result = await tool(mcp, "search_bookings")(tenant_id="acme", query="sam buyer")
    assert result["status"] == "bookings"
    assert [b["event_id"] for b in result["bookings"]] == [booked["event_id"]]

    result = await tool(mcp, "search_bookings")(tenant_id="acme", query="nobody")
    assert result["bookings"] == []


@pytest.mark.asyncio
async def test_lifespan_closes_after_the_last_session():
    orchestrator = AsyncMock()
    lifespan = _closing_lifespan(orchestrator)

    async with lifespan(None):
        async with lifespan(None):
            pass
        orchestrator.aclose.assert_not_awaited()
    orchestrator.aclose.assert_awaited_once()

    async with lifespan(None):
        pass
    assert orchestrator.aclose.await_count == 2
