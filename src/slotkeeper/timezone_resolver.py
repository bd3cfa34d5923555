"""Resolve timezone aliases and Windows zone names to IANA identifiers."""

from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

from .errors import ConfigurationError

# Abbreviations and city names people actually type into tenant settings
TIMEZONE_ALIASES: dict[str, str] = {
    # US
    "est": "America/New_York",
    "edt": "America/New_York",
    "eastern": "America/New_York",
    "cst": "America/Chicago",
    "cdt": "America/Chicago",
    "central": "America/Chicago",
    "mst": "America/Denver",
    "mdt": "America/Denver",
    "mountain": "America/Denver",
    "pst": "America/Los_Angeles",
    "pdt": "America/Los_Angeles",
    "pacific": "America/Los_Angeles",
    # Australia
    "aest": "Australia/Sydney",
    "aedt": "Australia/Sydney",
    "acst": "Australia/Adelaide",
    "acdt": "Australia/Adelaide",
    "awst": "Australia/Perth",
    "sydney": "Australia/Sydney",
    "melbourne": "Australia/Melbourne",
    "brisbane": "Australia/Brisbane",
    "perth": "Australia/Perth",
    "adelaide": "Australia/Adelaide",
    # UK / Europe
    "gmt": "Europe/London",
    "bst": "Europe/London",
    "cet": "Europe/Paris",
    "cest": "Europe/Paris",
    "london": "Europe/London",
    "paris": "Europe/Paris",
    "berlin": "Europe/Berlin",
    # Asia
    "jst": "Asia/Tokyo",
    "tokyo": "Asia/Tokyo",
    "singapore": "Asia/Singapore",
    "hong kong": "Asia/Hong_Kong",
    "shanghai": "Asia/Shanghai",
}

# Graph-style providers report event timezones with Windows names
WINDOWS_TO_IANA: dict[str, str] = {
    "AUS Eastern Standard Time": "Australia/Sydney",
    "E. Australia Standard Time": "Australia/Brisbane",
    "W. Australia Standard Time": "Australia/Perth",
    "Cen. Australia Standard Time": "Australia/Adelaide",
    "AUS Central Standard Time": "Australia/Darwin",
    "Tasmania Standard Time": "Australia/Hobart",
    "Singapore Standard Time": "Asia/Singapore",
    "SE Asia Standard Time": "Asia/Bangkok",
    "China Standard Time": "Asia/Shanghai",
    "Tokyo Standard Time": "Asia/Tokyo",
    "Korea Standard Time": "Asia/Seoul",
    "India Standard Time": "Asia/Kolkata",
    "Arabian Standard Time": "Asia/Dubai",
    "Eastern Standard Time": "America/New_York",
    "Central Standard Time": "America/Chicago",
    "Mountain Standard Time": "America/Denver",
    "Pacific Standard Time": "America/Los_Angeles",
    "GMT Standard Time": "Europe/London",
    "W. Europe Standard Time": "Europe/Berlin",
    "Romance Standard Time": "Europe/Paris",
    "FLE Standard Time": "Europe/Helsinki",
    "Central European Standard Time": "Europe/Warsaw",
    "Russian Standard Time": "Europe/Moscow",
    "UTC": "UTC",
}


@lru_cache(maxsize=1)
def _iana_by_lower() -> dict[str, str]:
    return {tz.lower(): tz for tz in available_timezones()}


def resolve_timezone(name: str) -> str | None:
    """Resolve an alias, Windows name, or IANA name to an IANA timezone.

    Returns None if unrecognized.
    """
    if not name:
        return None

    stripped = name.strip()
    if stripped in WINDOWS_TO_IANA:
        return WINDOWS_TO_IANA[stripped]

    normalized = stripped.lower()
    if normalized in TIMEZONE_ALIASES:
        return TIMEZONE_ALIASES[normalized]

    return _iana_by_lower().get(normalized)


def windows_to_iana(name: str, default: str = "UTC") -> str:
    """Convert a Windows timezone name (as Graph reports it) to IANA."""
    if not name:
        return default
    return WINDOWS_TO_IANA.get(name.strip()) or resolve_timezone(name) or default


def get_zone(name: str) -> ZoneInfo:
    """Return a ZoneInfo for a configured timezone, or raise ConfigurationError."""
    resolved = resolve_timezone(name) if isinstance(name, str) else None
    if not resolved:
        raise ConfigurationError(f"Unknown timezone: {name!r}")
    try:
        return ZoneInfo(resolved)
    except ZoneInfoNotFoundError as e:
        raise ConfigurationError(f"Unknown timezone: {name!r}") from e
