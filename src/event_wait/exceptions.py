"""Domain exception hierarchy for the event-wait coordinator."""

from __future__ import annotations


class EventWaitError(RuntimeError):
    """Base class for all domain-level wait errors."""


class InvalidTimeout(EventWaitError):
    """Raised when the timeout does not resolve to a number."""


class NonPositiveTimeout(EventWaitError):
    """Raised when the normalized timeout is zero or negative."""


class InvalidEventId(EventWaitError):
    """Raised when the event identifier resolves to nothing usable."""


class PropertyResolutionError(EventWaitError):
    """Raised when a context lookup or expression evaluation fails."""


class MissingEventBusError(EventWaitError):
    """Raised when no event bus has been configured for the coordinator."""


class UnsupportedModeError(EventWaitError):
    """Raised when a configured timeout handling mode is not implemented."""


class ConfigValidationError(EventWaitError):
    """Raised when configuration cannot be validated safely."""
