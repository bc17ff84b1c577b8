"""Exception hierarchy shared across the agenda package."""

from __future__ import annotations


class AgendaError(Exception):
    """Base class for all agenda errors."""


class InvalidTimestampError(AgendaError, ValueError):
    """Raised when an event's deadline or interval is missing or malformed."""


class SchedulingError(AgendaError):
    """Raised by a notification backend when a trigger cannot be created or cancelled."""


class ConfigError(AgendaError):
    """Raised when agenda configuration is missing, malformed, or invalid."""
