"""Tenant/agent directory: office hours, timezones and lead-time policy."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .cache import TTLCache
from .config import Config
from .errors import UnknownAgentError
from .models import AgentSchedule, CalendarRef, WeeklyOfficeHours

logger = logging.getLogger(__name__)

DEFAULT_LEAD_MINUTES = 15


class AgentDirectory(ABC):
    """Resolves who an appointment is booked against and under which rules."""

    @abstractmethod
    async def get_agent_schedule(self, tenant_id: str, agent_id: str | None = None) -> AgentSchedule:
        """Office hours, timezone and calendar of an agent (the tenant default if None)."""
        ...

    @abstractmethod
    async def get_minimum_lead_minutes(self, tenant_id: str) -> int:
        ...


class ConfigDirectory(AgentDirectory):
    """Directory backed by the ``tenants`` section of the YAML config."""

    def __init__(self, config: Config):
        self.config = config

    def _tenant(self, tenant_id: str):
        tenant = self.config.tenants.get(str(tenant_id))
        if tenant is None:
            raise UnknownAgentError(f"Unknown tenant: {tenant_id}")
        return tenant

    async def get_agent_schedule(self, tenant_id: str, agent_id: str | None = None) -> AgentSchedule:
        tenant = self._tenant(tenant_id)
        agent_key = str(agent_id) if agent_id else tenant.default_agent
        agent = tenant.agents.get(agent_key)
        if agent is None:
            raise UnknownAgentError(f"Unknown agent {agent_key!r} for tenant {tenant_id}")

        # Malformed hours raise ConfigurationError here, per agent
        hours = WeeklyOfficeHours.from_mapping(agent.office_hours)
        return AgentSchedule(
            tenant_id=tenant.tenant_id,
            agent_id=agent.agent_id,
            calendar_ref=CalendarRef(
                tenant_id=tenant.tenant_id,
                calendar_id=agent.calendar_id,
                watch_ids=tuple(sorted(agent.watch.items())),
            ),
            hours=hours,
            timezone=agent.timezone or tenant.timezone,
            name=agent.name,
        )

    async def get_minimum_lead_minutes(self, tenant_id: str) -> int:
        tenant = self._tenant(tenant_id)
        if tenant.min_lead_minutes is not None:
            return tenant.min_lead_minutes
        return self.config.search.default_lead_minutes


class StaticDirectory(AgentDirectory):
    """Directory holding ready-made schedules. Handy for embedding and tests."""

    def __init__(
        self,
        schedules: list[AgentSchedule],
        lead_minutes: dict[str, int] | None = None,
        default_lead_minutes: int = DEFAULT_LEAD_MINUTES,
    ):
        self._schedules: dict[tuple[str, str], AgentSchedule] = {}
        self._defaults: dict[str, str] = {}
        for schedule in schedules:
            self._schedules[(schedule.tenant_id, schedule.agent_id)] = schedule
            self._defaults.setdefault(schedule.tenant_id, schedule.agent_id)
        self._lead = lead_minutes or {}
        self.default_lead_minutes = default_lead_minutes

    async def get_agent_schedule(self, tenant_id: str, agent_id: str | None = None) -> AgentSchedule:
        agent_key = agent_id or self._defaults.get(tenant_id, "")
        schedule = self._schedules.get((tenant_id, agent_key))
        if schedule is None:
            raise UnknownAgentError(f"Unknown agent {agent_key!r} for tenant {tenant_id}")
        return schedule

    async def get_minimum_lead_minutes(self, tenant_id: str) -> int:
        return self._lead.get(tenant_id, self.default_lead_minutes)


class CachedAgentDirectory(AgentDirectory):
    """TTL cache in front of another directory."""

    def __init__(self, inner: AgentDirectory, cache: TTLCache, ttl: float = 30 * 60):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl

    async def get_agent_schedule(self, tenant_id: str, agent_id: str | None = None) -> AgentSchedule:
        key = f"schedule:{tenant_id}:{agent_id or ''}"
        schedule = self.cache.get(key)
        if schedule is None:
            schedule = await self.inner.get_agent_schedule(tenant_id, agent_id)
            self.cache.set(key, schedule, self.ttl)
        else:
            logger.debug("Cache hit: schedule for %s/%s", tenant_id, agent_id)
        return schedule

    async def get_minimum_lead_minutes(self, tenant_id: str) -> int:
        key = f"lead:{tenant_id}"
        lead = self.cache.get(key)
        if lead is None:
            lead = await self.inner.get_minimum_lead_minutes(tenant_id)
            self.cache.set(key, lead, self.ttl)
        return lead

    def invalidate(self, tenant_id: str) -> None:
        self.cache.invalidate_prefix(f"schedule:{tenant_id}:")
        self.cache.invalidate(f"lead:{tenant_id}")
