"""Time normalizer: turn caller-supplied date-times into UTC instants."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ..errors import InvalidDateTime
from ..timezone_resolver import get_zone

logger = logging.getLogger(__name__)

# Date and time are both required; seconds, fraction and offset are optional.
ISO_DATETIME = re.compile(
    r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:?\d{2})?$",
    re.IGNORECASE,
)


def normalize(value: str | datetime, tz: str | ZoneInfo | None = None) -> datetime:
    """Parse an ISO 8601 date-time into an aware UTC datetime.

    Strings with ``Z`` or a numeric offset are absolute. Offset-less strings are
    wall-clock time in ``tz`` (the tenant/agent timezone); without ``tz`` they
    are rejected rather than guessed.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = _parse_string(value)
    else:
        raise InvalidDateTime(value, "expected an ISO 8601 string")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        if tz is None:
            raise InvalidDateTime(value, "no UTC offset and no timezone supplied")
        zone = tz if isinstance(tz, ZoneInfo) else get_zone(tz)
        parsed = parsed.replace(tzinfo=zone)

    return parsed.astimezone(timezone.utc)


def to_iso(instant: datetime) -> str:
    """Canonical string form of an instant (UTC, explicit offset)."""
    return instant.astimezone(timezone.utc).isoformat()


def _parse_string(value: str) -> datetime:
    text = value.strip()
    if not ISO_DATETIME.match(text):
        raise InvalidDateTime(value, "expected e.g. 2025-10-20T13:00:00 or 2025-10-20T13:00:00+10:00")
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text.replace(" ", "T", 1))
    except ValueError as e:
        logger.debug("Rejected datetime %r: %s", value, e)
        raise InvalidDateTime(value, str(e)) from e

