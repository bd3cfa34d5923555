"""CLI entry point for slotkeeper."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from . import __version__


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def build_orchestrator(config):
    """Wire calendar, directory and caches from config into an orchestrator."""
    from .cache import TTLCache
    from .calendar.cached import CachingCalendarProvider
    from .calendar.factory import build_calendar_provider
    from .core.orchestrator import BookingOrchestrator
    from .directory import CachedAgentDirectory, ConfigDirectory

    calendar = build_calendar_provider(config.calendar)
    directory = ConfigDirectory(config)
    if config.cache.enabled:
        cache = TTLCache(default_ttl=config.cache.busy_ttl_seconds)
        calendar = CachingCalendarProvider(calendar, cache, ttl=config.cache.busy_ttl_seconds)
        directory = CachedAgentDirectory(directory, cache, ttl=config.cache.office_hours_ttl_seconds)
    return BookingOrchestrator(calendar, directory, settings=config.search)


def cmd_validate(args: argparse.Namespace) -> None:
    """Load the config and validate every agent's office hours."""
    from .config import load_config
    from .directory import ConfigDirectory
    from .errors import ConfigurationError

    print(f"slotkeeper v{__version__}: config validation\n")

    try:
        config = load_config(args.config)
        print(f"[OK] Config loaded from {args.config}")
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"[FAIL] Config: {e}")
        sys.exit(1)

    directory = ConfigDirectory(config)

    async def check_all() -> int:
        failures = 0
        for tenant in config.tenants.values():
            if not tenant.agents:
                print(f"[WARN] Tenant {tenant.tenant_id}: no agents configured")
            for agent in tenant.agents.values():
                label = f"{tenant.tenant_id}/{agent.agent_id}"
                try:
                    schedule = await directory.get_agent_schedule(tenant.tenant_id, agent.agent_id)
                    schedule.hours.validate()
                except ConfigurationError as e:
                    print(f"[FAIL] {label}: {e}")
                    failures += 1
                    continue
                days = ", ".join(schedule.hours.enabled_days()) or "closed every day"
                print(f"[OK] {label} ({schedule.timezone}): {days}")
        return failures

    failures = asyncio.run(check_all())
    if not config.tenants:
        print("[WARN] No tenants configured")
    print(f"[--] Calendar provider: {config.calendar.provider}"
          + (f" (+{len(config.calendar.watch)} watched)" if config.calendar.watch else ""))
    if failures:
        sys.exit(1)


def cmd_check(args: argparse.Namespace) -> None:
    """Run an availability check and print the verdict."""
    from .config import load_config
    from .models import BookingRequest

    _setup_logging(args.verbose)
    config = load_config(args.config)
    orchestrator = build_orchestrator(config)

    request = BookingRequest(
        tenant_id=args.tenant,
        start=args.start,
        end=args.end,
        duration_minutes=args.duration,
        agent_id=args.agent,
    )

    async def run():
        try:
            return await orchestrator.check_availability(request)
        finally:
            await orchestrator.aclose()

    outcome = asyncio.run(run())

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
        return

    data = outcome.to_dict()
    print(f"{outcome.kind.value}: {outcome.message}")
    if "display" in data:
        print(f"  Requested: {data['display']} ({outcome.timezone})")
    if outcome.earliest_allowed:
        print(f"  Earliest allowed: {outcome.earliest_allowed.isoformat()}")
    for i, alt in enumerate(data.get("alternatives", []), 1):
        print(f"  {i}. {alt.get('display', alt['start'])} (confidence {alt['confidence']})")
    if not outcome.ok:
        sys.exit(1)


def cmd_mcp(args: argparse.Namespace) -> None:
    """Run the MCP server (stdio transport for local testing / desktop clients)."""
    from .config import load_config
    from .mcp_server import create_mcp_server

    _setup_logging(args.verbose)

    config = load_config(args.config)
    if args.dry_run:
        config.dry_run = True
    if config.dry_run:
        print("Running in DRY RUN mode (no calendar events will be created)", file=sys.stderr)

    orchestrator = build_orchestrator(config)
    mcp = create_mcp_server(config, orchestrator)
    mcp.run(transport=args.transport or config.mcp.transport)


def main():
    parser = argparse.ArgumentParser(
        prog="slotkeeper",
        description="Availability resolution and booking tools for calendar-backed agents",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate config and office hours")
    validate_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")

    # check
    check_parser = subparsers.add_parser("check", help="Check availability of a time window")
    check_parser.add_argument("tenant", help="Tenant id")
    check_parser.add_argument("start", help="Requested start (ISO-8601)")
    check_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    check_parser.add_argument("-a", "--agent", default=None, help="Agent id (default: tenant's default agent)")
    check_parser.add_argument("-e", "--end", default=None, help="Requested end (ISO-8601)")
    check_parser.add_argument("-d", "--duration", type=int, default=None, help="Duration in minutes")
    check_parser.add_argument("--json", action="store_true", help="Print the outcome as JSON")
    check_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    # mcp
    mcp_parser = subparsers.add_parser("mcp", help="Run the MCP server")
    mcp_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    mcp_parser.add_argument("-t", "--transport", default=None, choices=["stdio", "streamable-http"], help="MCP transport")
    mcp_parser.add_argument("--dry-run", action="store_true", help="Check only, don't write calendar events")
    mcp_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    commands = {
        "validate": cmd_validate,
        "check": cmd_check,
        "mcp": cmd_mcp,
    }
    commands[args.command](args)
