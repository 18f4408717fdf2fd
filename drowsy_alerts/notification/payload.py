from __future__ import annotations

from datetime import datetime
from typing import Optional

from drowsy_alerts.domain.models import AlertEvent, utc_now
from drowsy_alerts.notification.base import NotificationPayload

SLEEPING_ALERT_TITLE = "Sleeping Alert"


def build_sleeping_payload(event: AlertEvent, now: Optional[datetime] = None) -> NotificationPayload:
    """
    Build the notification for a driver observed sleeping.

    Parameters
    ----------
    event
        Latest SLEEPING event for the driver. Its confidence and location fill
        the message and the ``data`` block.
    now
        Send time stamped on the payload. If None, uses current UTC time.

    Returns
    -------
    NotificationPayload
        Payload ready for a gateway.
    """
    confidence = event.confidence if event.confidence is not None else 0.0
    location = event.location or "unknown location"

    return NotificationPayload(
        title=SLEEPING_ALERT_TITLE,
        message=f"Detected sleeping at {location} with confidence {confidence:.2f}",
        driver_id=event.driver_id,
        timestamp=now or utc_now(),
        data={
            "confidence": event.confidence,
            "location": event.location or "",
        },
    )
