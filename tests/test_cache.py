"""Tests for the TTL cache and the caching wrappers built on it."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import local
from slotkeeper.cache import TTLCache
from slotkeeper.calendar.cached import CachingCalendarProvider
from slotkeeper.calendar.memory import InMemoryCalendarProvider
from slotkeeper.clock import FixedClock
from slotkeeper.core.orchestrator import BookingOrchestrator
from slotkeeper.directory import CachedAgentDirectory, StaticDirectory
from slotkeeper.errors import ProviderConflictError
from slotkeeper.models import AgentSchedule, Attendee, BookingRequest, CalendarRef, OutcomeKind, TimeWindow


class ManualTime:
    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


REF = CalendarRef("acme", "jane")


# --- TTLCache ---


def test_set_and_get():
    cache = TTLCache()
    cache.set("a", 1)
    assert cache.get("a") == 1
    assert cache.hits == 1


def test_missing_key():
    cache = TTLCache()
    assert cache.get("nope") is None
    assert cache.misses == 1


def test_entry_expires_lazily():
    now = ManualTime()
    cache = TTLCache(default_ttl=10, clock=now)
    cache.set("a", 1)
    now.value += 9.9
    assert cache.get("a") == 1
    now.value += 0.1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_per_entry_ttl():
    now = ManualTime()
    cache = TTLCache(default_ttl=10, clock=now)
    cache.set("short", 1, ttl=1)
    cache.set("long", 2)
    now.value += 5
    assert cache.get("short") is None
    assert cache.get("long") == 2


def test_zero_ttl_is_not_stored():
    cache = TTLCache()
    cache.set("a", 1, ttl=0)
    assert cache.get("a") is None


def test_invalidate_and_prefix():
    cache = TTLCache()
    cache.set("busy:acme:jane:1", 1)
    cache.set("busy:acme:jane:2", 2)
    cache.set("busy:acme:tom:1", 3)
    cache.invalidate("busy:acme:tom:1")
    assert cache.get("busy:acme:tom:1") is None
    assert cache.invalidate_prefix("busy:acme:jane:") == 2
    assert len(cache) == 0


def test_clear():
    cache = TTLCache()
    cache.set("a", 1)
    cache.clear()
    assert cache.get("a") is None


# --- CachingCalendarProvider ---


@pytest.fixture
def inner():
    provider = InMemoryCalendarProvider()
    provider.add_busy(REF, local(2025, 3, 11, 10), local(2025, 3, 11, 11))
    return provider


@pytest.mark.asyncio
async def test_busy_times_cached_per_range(inner):
    spy = AsyncMock(wraps=inner.get_busy_times)
    inner.get_busy_times = spy
    cached = CachingCalendarProvider(inner, TTLCache())
    start, end = local(2025, 3, 11), local(2025, 3, 12)

    first = await cached.get_busy_times(REF, start, end)
    second = await cached.get_busy_times(REF, start, end)
    assert first == second
    assert spy.await_count == 1

    await cached.get_busy_times(REF, start, local(2025, 3, 13))
    assert spy.await_count == 2


@pytest.mark.asyncio
async def test_write_invalidates_calendar(inner):
    cached = CachingCalendarProvider(inner, TTLCache())
    start, end = local(2025, 3, 11), local(2025, 3, 12)
    assert len(await cached.get_busy_times(REF, start, end)) == 1

    await cached.create_event(REF, TimeWindow(local(2025, 3, 11, 14), local(2025, 3, 11, 15)), Attendee("Sam"), "Viewing")
    assert len(await cached.get_busy_times(REF, start, end)) == 2


@pytest.mark.asyncio
async def test_failed_write_still_invalidates(inner):
    cache = TTLCache()
    cached = CachingCalendarProvider(inner, cache)
    await cached.get_busy_times(REF, local(2025, 3, 11), local(2025, 3, 12))
    assert len(cache) == 1
    with pytest.raises(ProviderConflictError):
        await cached.create_event(REF, TimeWindow(local(2025, 3, 11, 10), local(2025, 3, 11, 11)), Attendee("Sam"), "Clash")
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_cached_calendar_behind_orchestrator(weekday_hours):
    schedule = AgentSchedule("acme", "jane", REF, weekday_hours, "Australia/Melbourne")
    calendar = CachingCalendarProvider(InMemoryCalendarProvider(), TTLCache())
    orchestrator = BookingOrchestrator(calendar, StaticDirectory([schedule]), FixedClock(local(2025, 3, 10, 8)))
    req = BookingRequest(tenant_id="acme", start="2025-03-11T10:00", attendee=Attendee("Sam Buyer"))

    assert (await orchestrator.check_availability(req)).kind is OutcomeKind.AVAILABLE
    assert (await orchestrator.book(req)).kind is OutcomeKind.CONFIRMED
    # Our own booking is visible immediately, not after the TTL
    assert (await orchestrator.book(req)).kind is OutcomeKind.CONFLICT


# --- CachedAgentDirectory ---


@pytest.mark.asyncio
async def test_directory_lookups_cached(weekday_hours):
    schedule = AgentSchedule("acme", "jane", REF, weekday_hours, "UTC")
    inner = StaticDirectory([schedule], lead_minutes={"acme": 30})
    inner.get_agent_schedule = AsyncMock(wraps=inner.get_agent_schedule)
    directory = CachedAgentDirectory(inner, TTLCache())

    assert await directory.get_agent_schedule("acme") is schedule
    assert await directory.get_agent_schedule("acme") is schedule
    assert inner.get_agent_schedule.await_count == 1
    assert await directory.get_minimum_lead_minutes("acme") == 30

    directory.invalidate("acme")
    await directory.get_agent_schedule("acme")
    assert inner.get_agent_schedule.await_count == 2


@pytest.mark.asyncio
async def test_directory_zero_lead_is_cached(weekday_hours):
    schedule = AgentSchedule("acme", "jane", REF, weekday_hours, "UTC")
    inner = StaticDirectory([schedule], lead_minutes={"acme": 0})
    inner.get_minimum_lead_minutes = AsyncMock(wraps=inner.get_minimum_lead_minutes)
    directory = CachedAgentDirectory(inner, TTLCache())
    assert await directory.get_minimum_lead_minutes("acme") == 0
    assert await directory.get_minimum_lead_minutes("acme") == 0
    assert inner.get_minimum_lead_minutes.await_count == 1
