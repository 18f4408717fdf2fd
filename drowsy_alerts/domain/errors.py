"""
Error taxonomy for the alert dispatcher.

- DecodeError: malformed stream entry; the entry is dropped.
- DeliveryError: the notification gateway failed; logged, never retried here.
- TargetNotFoundError: no delivery target for a driver; that attempt is abandoned.
- TransportError: the event source is unreachable; the receiver backs off and retries.
"""

from __future__ import annotations


class DecodeError(ValueError):
    """Raised when a stream entry cannot be decoded into an AlertEvent."""


class DeliveryError(Exception):
    """Raised when a notification could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TargetNotFoundError(LookupError):
    """Raised when no delivery target is known for a driver."""

    def __init__(self, driver_id: str):
        super().__init__(f"No delivery target for driver {driver_id!r}")
        self.driver_id = driver_id


class TransportError(Exception):
    """Raised when the inbound event source cannot be read or acknowledged."""
