"""Tests for config loading and the config-backed directory."""

from __future__ import annotations

from datetime import time

import pytest

from slotkeeper.config import Config, SearchConfig, load_config, parse_config
from slotkeeper.directory import DEFAULT_LEAD_MINUTES, ConfigDirectory
from slotkeeper.errors import ConfigurationError, UnknownAgentError
from slotkeeper.models import CalendarRef


CONFIG_YAML = """
search:
  step_minutes: 30
  horizon_days: 14
cache:
  enabled: false
calendar:
  provider: graph
  token: "${TEST_GRAPH_TOKEN}"
  watch:
    - provider: calcom
      name: cal.com
      token: "${TEST_CALCOM_KEY}"
tenants:
  acme:
    name: Acme Realty
    timezone: AEST
    min_lead_minutes: 60
    agents:
      jane:
        name: Jane Smith
        calendar_id: jane@acme.example
        watch:
          cal.com: 4321
        office_hours:
          monday: "09:00-17:00"
          friday: {start: "10:00", end: "15:00"}
      tom:
        calendar_id: tom@acme.example
        timezone: Australia/Perth
        office_hours:
          tuesday: ["08:00-12:00"]
  solo:
    agents:
      me:
        office_hours:
          wednesday: "09:00-11:00"
mcp:
  transport: streamable-http
  port: 9000
"""


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_GRAPH_TOKEN", "graph-secret")
    monkeypatch.setenv("TEST_CALCOM_KEY", "cal_live_x")
    monkeypatch.delenv("DRY_RUN", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)
    return path


def test_load_config(config_file):
    config = load_config(config_file)
    assert config.search.step_minutes == 30
    assert config.search.horizon_days == 14
    assert config.search.max_suggestions == 5
    assert config.cache.enabled is False
    assert config.mcp.transport == "streamable-http"
    assert config.mcp.port == 9000
    assert config.dry_run is False


def test_env_vars_resolved(config_file):
    config = load_config(config_file)
    assert config.calendar.token == "graph-secret"
    assert config.calendar.watch[0].provider == "calcom"
    assert config.calendar.watch[0].token == "cal_live_x"


def test_env_file_beside_config(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_DOTENV_TOKEN", raising=False)
    (tmp_path / ".env").write_text("TEST_DOTENV_TOKEN=from-dotenv\n")
    path = tmp_path / "config.yaml"
    path.write_text("calendar:\n  provider: graph\n  token: ${TEST_DOTENV_TOKEN}\n")
    assert load_config(path).calendar.token == "from-dotenv"


def test_unset_env_var_left_as_is(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MISSING_VAR", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("calendar:\n  token: ${TEST_MISSING_VAR}\n")
    assert load_config(path).calendar.token == "${TEST_MISSING_VAR}"


def test_dry_run_from_env(config_file, monkeypatch):
    monkeypatch.setenv("DRY_RUN", "true")
    assert load_config(config_file).dry_run is True


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    config = load_config(path)
    assert config.search == SearchConfig()
    assert config.calendar.provider == "memory"
    assert config.tenants == {}


def test_tenants_parsed(config_file):
    acme = load_config(config_file).tenants["acme"]
    assert acme.timezone == "Australia/Sydney"
    assert acme.min_lead_minutes == 60
    assert acme.default_agent == "jane"
    assert acme.agents["jane"].timezone == "Australia/Sydney"
    assert acme.agents["tom"].timezone == "Australia/Perth"
    assert acme.agents["tom"].name == "tom"


def test_unknown_timezone_rejected():
    with pytest.raises(ConfigurationError, match="unknown timezone"):
        parse_config({"tenants": {"acme": {"timezone": "Atlantis/Central"}}})


def test_non_integer_rejected():
    with pytest.raises(ConfigurationError, match="search.step_minutes"):
        parse_config({"search": {"step_minutes": "often"}})


def test_non_positive_step_rejected():
    with pytest.raises(ConfigurationError):
        parse_config({"search": {"step_minutes": 0}})


# --- ConfigDirectory ---


@pytest.mark.asyncio
async def test_directory_default_agent(config_file):
    directory = ConfigDirectory(load_config(config_file))
    schedule = await directory.get_agent_schedule("acme")
    assert schedule.agent_id == "jane"
    assert schedule.calendar_ref == CalendarRef("acme", "jane@acme.example", watch_ids=(("cal.com", "4321"),))
    assert schedule.calendar_ref.for_watch("cal.com") == CalendarRef("acme", "4321")
    assert schedule.timezone == "Australia/Sydney"
    assert schedule.hours["monday"].enabled
    assert schedule.hours["friday"].end == time(15)
    assert not schedule.hours["saturday"].enabled


@pytest.mark.asyncio
async def test_directory_named_agent(config_file):
    schedule = await ConfigDirectory(load_config(config_file)).get_agent_schedule("acme", "tom")
    assert schedule.timezone == "Australia/Perth"
    assert schedule.hours.enabled_days() == ["tuesday"]
    assert schedule.calendar_ref.for_watch("cal.com") is None


@pytest.mark.asyncio
async def test_directory_calendar_id_defaults_to_agent_id(config_file):
    schedule = await ConfigDirectory(load_config(config_file)).get_agent_schedule("solo")
    assert schedule.calendar_ref.calendar_id == "me"
    assert schedule.timezone == "UTC"


@pytest.mark.asyncio
async def test_directory_lead_minutes(config_file):
    directory = ConfigDirectory(load_config(config_file))
    assert await directory.get_minimum_lead_minutes("acme") == 60
    assert await directory.get_minimum_lead_minutes("solo") == DEFAULT_LEAD_MINUTES


@pytest.mark.asyncio
async def test_directory_unknown_tenant_and_agent(config_file):
    directory = ConfigDirectory(load_config(config_file))
    with pytest.raises(UnknownAgentError):
        await directory.get_agent_schedule("globex")
    with pytest.raises(UnknownAgentError):
        await directory.get_agent_schedule("acme", "ghost")
    with pytest.raises(UnknownAgentError):
        await directory.get_minimum_lead_minutes("globex")


@pytest.mark.asyncio
async def test_directory_malformed_hours():
    config = parse_config({"tenants": {"acme": {"agents": {"jane": {"office_hours": {"monday": "nine-five"}}}}}})
    with pytest.raises(ConfigurationError):
        await ConfigDirectory(config).get_agent_schedule("acme")


def test_config_defaults():
    config = Config()
    assert config.search.step_minutes == 15
    assert config.search.horizon_days == 7
    assert config.cache.busy_ttl_seconds == 300
    assert config.search.max_listed_slots == 50


def test_agent_watch_link_must_name_a_watch_calendar():
    raw = {
        "calendar": {"provider": "graph", "watch": [{"provider": "calcom", "name": "cal.com"}]},
        "tenants": {"acme": {"agents": {"jane": {"watch": {"calcom": "4321"}}}}},
    }
    with pytest.raises(ConfigurationError) as exc:
        parse_config(raw)
    assert "'calcom'" in str(exc.value)


def test_watch_calendar_names_must_be_distinct():
    raw = {"calendar": {"watch": [{"provider": "calcom", "name": "extra"}, {"provider": "memory", "name": "extra"}]}}
    with pytest.raises(ConfigurationError):
        parse_config(raw)


def test_agent_watch_links_parsed():
    raw = {
        "calendar": {"watch": [{"provider": "calcom", "name": "cal.com"}]},
        "search": {"max_listed_slots": 20},
        "tenants": {"acme": {"agents": {"jane": {"watch": {"cal.com": 4321}}}}},
    }
    config = parse_config(raw)
    assert config.tenants["acme"].agents["jane"].watch == {"cal.com": "4321"}
    assert config.search.max_listed_slots == 20
