"""Exceptions raised by the scheduling core."""

from typing import Optional


class SchedulingError(Exception):
    """Base class for scheduling errors."""


class ProviderError(SchedulingError):
    """A calendar lookup failed (network, auth or permissions)."""

    def __init__(self, message: str, attendee: Optional[str] = None):
        super().__init__(message)
        self.attendee = attendee


# Name used by callers that think in terms of availability rather than transport
ProviderUnavailable = ProviderError


class InvalidRequestError(SchedulingError, ValueError):
    """Malformed scheduling input, rejected before any provider call."""
