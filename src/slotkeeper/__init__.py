"""slotkeeper: availability resolution and booking tools for calendar-backed agents."""

__version__ = "0.1.0"
