"""Factory for building calendar providers from config."""

from __future__ import annotations

import logging

from ..config import CalendarConfig
from ..errors import ConfigurationError
from .base import CalendarProvider
from .multi_calendar import MultiCalendarManager

logger = logging.getLogger(__name__)

PROVIDERS = ("memory", "google", "graph", "calcom")


def _build_single(config: CalendarConfig) -> CalendarProvider:
    provider = config.provider.lower()
    retry = {"max_retries": config.max_retries, "timeout": config.timeout_seconds}

    if provider == "memory":
        from .memory import InMemoryCalendarProvider
        return InMemoryCalendarProvider()
    if provider == "google":
        from .google_calendar import GoogleCalendarProvider
        return GoogleCalendarProvider(config)
    if provider in ("graph", "calcom") and not config.token:
        raise ConfigurationError(f"calendar {config.name!r}: provider {provider} needs a token")
    if provider == "graph":
        from .graph_calendar import GRAPH_BASE_URL, GraphCalendarProvider
        return GraphCalendarProvider(config.token, base_url=config.base_url or GRAPH_BASE_URL, **retry)
    if provider == "calcom":
        from .calcom import CALCOM_BASE_URL, CalcomProvider
        return CalcomProvider(
            config.token,
            base_url=config.base_url or CALCOM_BASE_URL,
            attendee_timezone=config.attendee_timezone,
            **retry,
        )
    raise ConfigurationError(f"Unknown calendar provider: {config.provider!r} (expected one of {', '.join(PROVIDERS)})")


def build_calendar_provider(config: CalendarConfig) -> CalendarProvider:
    """Build a CalendarProvider from config.

    - Without ``watch`` entries: the single provider named by ``config.provider``
    - With ``watch`` entries: a MultiCalendarManager that books on the main
      provider and also treats the watched calendars' busy times as busy
    """
    book_provider = _build_single(config)
    if not config.watch:
        logger.info("Calendar provider '%s' (%s)", config.name, config.provider)
        return book_provider

    watch_providers = {w.name: _build_single(w) for w in config.watch}
    logger.info(
        "Multi-calendar: book='%s' (%s), watch=%d calendar(s)",
        config.name, config.provider, len(watch_providers),
    )
    return MultiCalendarManager(book_provider, watch_providers, config.name)
