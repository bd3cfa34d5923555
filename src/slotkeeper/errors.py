"""Exception hierarchy shared by the engine and its collaborators."""

from __future__ import annotations

from datetime import datetime


class SlotkeeperError(Exception):
    """Base class for all slotkeeper errors."""


class InvalidInputError(SlotkeeperError):
    """Caller supplied malformed or incomplete input. Never retried."""


class InvalidDateTime(InvalidInputError):
    """A date-time string could not be turned into an instant."""

    def __init__(self, value: object, detail: str = ""):
        self.value = value
        message = f"Invalid datetime: {value!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class UnknownAgentError(InvalidInputError):
    """The tenant or agent is not known to the directory."""


class ConfigurationError(SlotkeeperError):
    """Tenant/agent configuration is malformed (office hours, timezone, ...)."""


class ProviderError(SlotkeeperError):
    """The calendar collaborator failed.

    ``transient`` tells the caller whether trying again later may succeed
    (rate limits, timeouts, 5xx) or not (auth, invalid attendee).
    """

    def __init__(self, message: str, transient: bool = False, status: int | None = None):
        super().__init__(message)
        self.transient = transient
        self.status = status


class ProviderConflictError(ProviderError):
    """The provider itself rejected a write because the slot is taken."""

    def __init__(self, message: str = "slot already booked on provider", conflicting_start: datetime | None = None):
        super().__init__(message, transient=False, status=409)
        self.conflicting_start = conflicting_start


class ProviderTimeoutError(ProviderError):
    def __init__(self, message: str = "timeout"):
        super().__init__(message, transient=True)
