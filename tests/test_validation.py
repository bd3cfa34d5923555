"""Tests for booking request field validation."""

from __future__ import annotations

import pytest

from slotkeeper.core.validation import clean_attendee, ensure_valid, is_valid_email, validate_request_fields
from slotkeeper.errors import InvalidInputError
from slotkeeper.models import Attendee, BookingRequest


def make(**kwargs) -> BookingRequest:
    kwargs.setdefault("tenant_id", "acme")
    kwargs.setdefault("start", "2025-03-11T10:00")
    kwargs.setdefault("attendee", Attendee(name="Sam Buyer", email="sam@example.com"))
    return BookingRequest(**kwargs)


# ── Email ────────────────────────────────────────────────


class TestEmail:
    @pytest.mark.parametrize("email", ["sam@example.com", "first.last+tag@sub.example.com.au"])
    def test_valid(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["sam", "sam@", "@example.com", "sam@example", "sam @example.com"])
    def test_invalid(self, email):
        assert not is_valid_email(email)

    def test_too_long(self):
        assert not is_valid_email("a" * 250 + "@example.com")


# ── Attendee cleanup ─────────────────────────────────────


def test_clean_attendee_strips_html():
    cleaned = clean_attendee(Attendee(name="  <b>Sam</b> Buyer<script>x</script> ", email=" sam@example.com "))
    assert cleaned.name == "Sam Buyerx"
    assert cleaned.email == "sam@example.com"


# ── Request fields ───────────────────────────────────────


def test_valid_request_has_no_errors():
    assert validate_request_fields(make(subject="Property viewing")) == []


def test_empty_subject_allowed():
    assert validate_request_fields(make(subject="")) == []


def test_missing_tenant_and_start():
    errors = validate_request_fields(make(tenant_id="", start=""))
    assert "tenant_id is required" in errors
    assert "start is required" in errors


def test_attendee_optional_for_checks():
    assert validate_request_fields(make(attendee=Attendee()), require_attendee=False) == []


def test_name_too_long():
    errors = validate_request_fields(make(attendee=Attendee(name="x" * 101)))
    assert any("too long" in e for e in errors)


def test_html_only_name_counts_as_missing():
    assert "attendee name is required" in validate_request_fields(make(attendee=Attendee(name="<i></i>")))


def test_ensure_valid_joins_errors():
    with pytest.raises(InvalidInputError) as exc:
        ensure_valid(make(tenant_id="", subject="ab"))
    assert str(exc.value) == "tenant_id is required; subject must be at least 3 characters"
