"""
Domain models and enums.

This module defines the core domain-level types used across the service:
- Driver status (SLEEPING / NORMAL)
- AlertEvent, one decoded status observation for a driver
- DriverAlertRecord, the per-driver lifecycle state owned by the state store
- TransitionResult, the outcome of applying a status to a record

Events are immutable (frozen) dataclasses so they can be shared between the
receiver, dispatcher, timer and delivery threads without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class DriverStatus(str, Enum):
    """
    Driver status reported by the detection side.

    Members
    -------
    SLEEPING : str
        The driver was observed sleeping; this is the alert state.
    NORMAL : str
        The driver is awake. Unseen drivers are assumed NORMAL.
    """

    SLEEPING = "sleeping"
    NORMAL = "normal"


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AlertEvent:
    """
    One decoded status observation for a driver.

    Parameters
    ----------
    driver_id
        Driver identifier. Integer ids from the stream are stringified on decode.
    status
        Reported driver status.
    confidence
        Detector confidence; only meaningful for SLEEPING.
    location
        Free-form location string (e.g., "Highway 1 km 20").
    observed_at
        When the observation was made. Defaults to arrival time.
    message_id
        Stream entry id the event was decoded from, if any.
    """

    driver_id: str
    status: DriverStatus
    confidence: Optional[float] = None
    location: Optional[str] = None
    observed_at: datetime = field(default_factory=utc_now)
    message_id: Optional[str] = None


@dataclass(frozen=True)
class TransitionResult:
    """
    Result of `AlertStateStore.transition`.

    Parameters
    ----------
    changed
        True if the stored status was different and has been updated.
    previous
        Status held before the call.
    """

    changed: bool
    previous: DriverStatus


@dataclass
class DriverAlertRecord:
    """
    Mutable per-driver alert state.

    Records are owned by `AlertStateStore` and mutated only while the
    driver's lock is held.

    Invariants
    ----------
    - ``timer_active`` is True iff ``current_status`` is SLEEPING.
    - ``last_notified_at`` is a monotonic clock reading, not wall time.

    Parameters
    ----------
    driver_id
        Driver identifier.
    current_status
        Current status (NORMAL for a freshly created record).
    last_notified_at
        Monotonic time of the last send that passed the rate limit.
    latest_event
        Most recent SLEEPING event, used to build refreshed payloads.
    timer_active
        Whether a re-notification timer is registered for the driver.
    alert_generation
        Incremented on every status change. Sends carry the generation they
        were queued under and are skipped once it has moved on.
    """

    driver_id: str
    current_status: DriverStatus = DriverStatus.NORMAL
    last_notified_at: Optional[float] = None
    latest_event: Optional[AlertEvent] = None
    timer_active: bool = False
    alert_generation: int = 0
