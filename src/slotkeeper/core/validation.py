"""Required-field checks for booking requests."""

from __future__ import annotations

import re

from ..errors import InvalidInputError
from ..models import Attendee, BookingRequest

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 254
MIN_SUBJECT_LENGTH = 3
MAX_SUBJECT_LENGTH = 255


def is_valid_email(email: str) -> bool:
    return len(email) <= MAX_EMAIL_LENGTH and bool(EMAIL_PATTERN.match(email))


def clean_attendee(attendee: Attendee) -> Attendee:
    """Strip whitespace and HTML tags from attendee fields."""
    name = re.sub(r"<[^>]+>", "", attendee.name or "").strip()
    return Attendee(name=name, email=(attendee.email or "").strip(), phone=(attendee.phone or "").strip())


def validate_request_fields(request: BookingRequest, require_attendee: bool = True) -> list[str]:
    """Return human-readable problems with the request (empty when fine)."""
    errors = []
    if not request.tenant_id:
        errors.append("tenant_id is required")
    if request.start is None or request.start == "":
        errors.append("start is required")
    if request.end is not None and request.duration_minutes is not None:
        errors.append("give either end or duration_minutes, not both")

    subject = (request.subject or "").strip()
    if subject and len(subject) < MIN_SUBJECT_LENGTH:
        errors.append(f"subject must be at least {MIN_SUBJECT_LENGTH} characters")
    elif len(subject) > MAX_SUBJECT_LENGTH:
        errors.append(f"subject must be less than {MAX_SUBJECT_LENGTH} characters")

    attendee = clean_attendee(request.attendee)
    if require_attendee:
        if not attendee.name:
            errors.append("attendee name is required")
        elif len(attendee.name) < 2:
            errors.append("attendee name must be at least 2 characters")
    if len(attendee.name) > MAX_NAME_LENGTH:
        errors.append(f"attendee name too long (max {MAX_NAME_LENGTH} characters)")
    if attendee.email and not is_valid_email(attendee.email):
        errors.append("invalid email address format")
    return errors


def ensure_valid(request: BookingRequest, require_attendee: bool = True) -> None:
    errors = validate_request_fields(request, require_attendee)
    if errors:
        raise InvalidInputError("; ".join(errors))
