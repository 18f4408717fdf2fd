from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Protocol


@dataclass(frozen=True)
class NotificationPayload:
    """
    Notification contract sent to the gateway.

    A payload is built at send time from the triggering `AlertEvent` and is
    never persisted. It describes *what should be communicated*, not *how* it
    is delivered.

    Parameters
    ----------
    title
        Short notification title (e.g., "Sleeping Alert").
    message
        Human-readable body.
    driver_id
        Driver the notification is about.
    timestamp
        Send time. Serialized as RFC 3339 in UTC.
    data
        Structured extras for downstream consumers (confidence, location).

    Notes
    -----
    The class is frozen (immutable) so a payload stays stable once handed to a
    delivery worker.
    """

    title: str
    message: str
    driver_id: str
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """
        Return the JSON-ready wire shape.

        Returns
        -------
        dict
            ``{"title", "message", "driver_id", "timestamp", "data"}``.
        """
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return {
            "title": self.title,
            "message": self.message,
            "driver_id": self.driver_id,
            "timestamp": ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "data": dict(self.data),
        }


class NotificationGateway(Protocol):
    """
    Protocol interface for notification delivery.

    Any gateway can be used if it provides ``deliver(target, payload)``.
    Success is a normal return; failure raises
    :class:`~drowsy_alerts.domain.errors.DeliveryError`.
    """

    def deliver(self, target: str, payload: NotificationPayload) -> None:
        """
        Deliver one notification.

        Parameters
        ----------
        target
            Resolved delivery target (webhook URL or device token).
        payload
            The notification to deliver.
        """
        ...


class TargetResolver(Protocol):
    """
    Protocol interface for resolving where a driver's notifications go.

    ``lookup`` raises :class:`~drowsy_alerts.domain.errors.TargetNotFoundError`
    when no target is known.
    """

    def lookup(self, driver_id: str) -> str:
        ...
