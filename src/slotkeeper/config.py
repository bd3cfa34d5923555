"""Configuration loading from YAML + environment variables."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError
from .timezone_resolver import resolve_timezone


@dataclass
class SearchConfig:
    step_minutes: int = 15
    horizon_days: int = 7
    max_suggestions: int = 5
    max_listed_slots: int = 50
    request_timeout_seconds: float = 20.0
    default_lead_minutes: int = 15
    default_duration_minutes: int = 60
    min_duration_minutes: int = 15
    max_duration_minutes: int = 480


@dataclass
class CacheConfig:
    enabled: bool = True
    office_hours_ttl_seconds: int = 30 * 60
    busy_ttl_seconds: int = 5 * 60


@dataclass
class CalendarConfig:
    provider: str = "memory"  # memory | google | graph | calcom
    name: str = "primary"
    credentials_path: str = "credentials.json"  # google service account file
    token: str = ""  # bearer token for graph / calcom
    base_url: str = ""
    attendee_timezone: str = "UTC"
    max_retries: int = 3
    timeout_seconds: float = 15.0
    watch: list[CalendarConfig] = field(default_factory=list)


@dataclass
class AgentConfig:
    agent_id: str
    calendar_id: str
    name: str = ""
    timezone: str = ""  # falls back to the tenant timezone
    office_hours: dict[str, Any] = field(default_factory=dict)
    watch: dict[str, str] = field(default_factory=dict)  # watch calendar name -> calendar id


@dataclass
class TenantConfig:
    tenant_id: str
    name: str = ""
    timezone: str = "UTC"
    min_lead_minutes: int | None = None
    default_agent: str = ""
    agents: dict[str, AgentConfig] = field(default_factory=dict)


@dataclass
class MCPConfig:
    transport: str = "stdio"  # stdio | streamable-http
    path: str = "/mcp"
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    search: SearchConfig = field(default_factory=SearchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    tenants: dict[str, TenantConfig] = field(default_factory=dict)
    mcp: MCPConfig = field(default_factory=MCPConfig)
    dry_run: bool = False


def _resolve_env_vars(value: str) -> str:
    """Replace ${VAR} with environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _resolve(value: Any) -> Any:
    """Recursively resolve env vars in strings nested in dicts and lists."""
    if isinstance(value, str):
        return _resolve_env_vars(value)
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(i) for i in value]
    return value


def _timezone(name: str, where: str) -> str:
    resolved = resolve_timezone(name)
    if not resolved:
        raise ConfigurationError(f"{where}: unknown timezone {name!r}")
    return resolved


def _int(data: dict, key: str, default: int, where: str) -> int:
    value = data.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}.{key} must be an integer, got {value!r}") from None


def _parse_calendar(data: dict) -> CalendarConfig:
    watch = [_parse_calendar(w) for w in data.get("watch", []) if isinstance(w, dict)]
    return CalendarConfig(
        provider=str(data.get("provider", "memory")).lower(),
        name=data.get("name", "primary"),
        credentials_path=data.get("credentials_path", "credentials.json"),
        token=data.get("token", ""),
        base_url=data.get("base_url", ""),
        attendee_timezone=data.get("attendee_timezone", "UTC"),
        max_retries=_int(data, "max_retries", 3, "calendar"),
        timeout_seconds=float(data.get("timeout_seconds", 15.0)),
        watch=watch,
    )


def _parse_watch_links(data: Any, watch_names: set[str], where: str) -> dict[str, str]:
    if not data:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{where}.watch must map watch calendar names to calendar ids")
    links = {}
    for name, calendar_id in data.items():
        if str(name) not in watch_names:
            raise ConfigurationError(f"{where}.watch: no watch calendar named {name!r} under calendar.watch")
        links[str(name)] = str(calendar_id)
    return links


def _parse_tenant(tenant_id: str, data: dict, watch_names: set[str] | None = None) -> TenantConfig:
    where = f"tenants.{tenant_id}"
    tenant_tz = _timezone(data.get("timezone", "UTC"), where)

    agents = {}
    for agent_id, agent_data in (data.get("agents") or {}).items():
        agent_id = str(agent_id)
        if not isinstance(agent_data, dict):
            raise ConfigurationError(f"{where}.agents.{agent_id} must be a mapping")
        agent_tz = agent_data.get("timezone")
        agents[agent_id] = AgentConfig(
            agent_id=agent_id,
            calendar_id=str(agent_data.get("calendar_id", agent_id)),
            name=agent_data.get("name", agent_id),
            timezone=_timezone(agent_tz, f"{where}.agents.{agent_id}") if agent_tz else tenant_tz,
            office_hours=agent_data.get("office_hours") or {},
            watch=_parse_watch_links(agent_data.get("watch"), watch_names or set(), f"{where}.agents.{agent_id}"),
        )

    lead = data.get("min_lead_minutes")
    return TenantConfig(
        tenant_id=tenant_id,
        name=data.get("name", tenant_id),
        timezone=tenant_tz,
        min_lead_minutes=_int(data, "min_lead_minutes", 0, where) if lead is not None else None,
        default_agent=str(data.get("default_agent", next(iter(agents), ""))),
        agents=agents,
    )


def load_config(config_path: str | Path, env_path: str | Path | None = None) -> Config:
    """Load config from YAML file with env var resolution."""
    config_path = Path(config_path).resolve()
    config_dir = config_path.parent

    if env_path:
        load_dotenv(env_path)
    else:
        # Look for .env next to config file first, then CWD
        env_beside_config = config_dir / ".env"
        if env_beside_config.exists():
            load_dotenv(env_beside_config)
        else:
            load_dotenv()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return parse_config(_resolve(raw))


def parse_config(raw: dict) -> Config:
    """Build a Config from already-loaded YAML data."""
    search_data = raw.get("search", {})
    search = SearchConfig(
        step_minutes=_int(search_data, "step_minutes", 15, "search"),
        horizon_days=_int(search_data, "horizon_days", 7, "search"),
        max_suggestions=_int(search_data, "max_suggestions", 5, "search"),
        max_listed_slots=_int(search_data, "max_listed_slots", 50, "search"),
        request_timeout_seconds=float(search_data.get("request_timeout_seconds", 20.0)),
        default_lead_minutes=_int(search_data, "default_lead_minutes", 15, "search"),
        default_duration_minutes=_int(search_data, "default_duration_minutes", 60, "search"),
        min_duration_minutes=_int(search_data, "min_duration_minutes", 15, "search"),
        max_duration_minutes=_int(search_data, "max_duration_minutes", 480, "search"),
    )
    if search.step_minutes <= 0 or search.horizon_days <= 0 or search.max_listed_slots <= 0:
        raise ConfigurationError("search.step_minutes, search.horizon_days and search.max_listed_slots must be positive")

    cache_data = raw.get("cache", {})
    cache = CacheConfig(
        enabled=bool(cache_data.get("enabled", True)),
        office_hours_ttl_seconds=_int(cache_data, "office_hours_ttl_seconds", 30 * 60, "cache"),
        busy_ttl_seconds=_int(cache_data, "busy_ttl_seconds", 5 * 60, "cache"),
    )

    calendar = _parse_calendar(raw.get("calendar", {}))
    watch_names = [w.name for w in calendar.watch]
    if len(set(watch_names)) != len(watch_names):
        raise ConfigurationError("calendar.watch entries need distinct names")

    tenants = {}
    for tenant_id, tenant_data in (raw.get("tenants") or {}).items():
        if isinstance(tenant_data, dict):
            tenants[str(tenant_id)] = _parse_tenant(str(tenant_id), tenant_data, set(watch_names))

    mcp_data = raw.get("mcp", {})
    mcp = MCPConfig(
        transport=mcp_data.get("transport", "stdio"),
        path=mcp_data.get("path", "/mcp"),
        host=mcp_data.get("host", "127.0.0.1"),
        port=_int(mcp_data, "port", 8080, "mcp"),
    )

    dry_run = os.environ.get("DRY_RUN", "").lower() in ("true", "1", "yes")

    return Config(
        search=search,
        cache=cache,
        calendar=calendar,
        tenants=tenants,
        mcp=mcp,
        dry_run=dry_run,
    )
