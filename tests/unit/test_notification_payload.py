"""
Unit tests for drowsy_alerts.notification.payload and NotificationPayload.to_dict.

These tests validate the outbound wire shape:
- title/message/driver_id/timestamp/data keys
- RFC 3339 UTC timestamps
- message formatting with missing confidence/location
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from drowsy_alerts.domain.models import AlertEvent, DriverStatus
from drowsy_alerts.notification.base import NotificationPayload
from drowsy_alerts.notification.payload import SLEEPING_ALERT_TITLE, build_sleeping_payload


def test_build_sleeping_payload_fields() -> None:
    now = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    ev = AlertEvent(driver_id="D1", status=DriverStatus.SLEEPING, confidence=0.912, location="Highway 1")

    p = build_sleeping_payload(ev, now=now)

    assert p.title == SLEEPING_ALERT_TITLE
    assert p.message == "Detected sleeping at Highway 1 with confidence 0.91"
    assert p.driver_id == "D1"
    assert p.timestamp == now
    assert p.data == {"confidence": 0.912, "location": "Highway 1"}


def test_build_sleeping_payload_without_optional_fields() -> None:
    ev = AlertEvent(driver_id="D2", status=DriverStatus.SLEEPING)

    p = build_sleeping_payload(ev)

    assert "unknown location" in p.message
    assert "0.00" in p.message
    assert p.data == {"confidence": None, "location": ""}
    assert p.timestamp.tzinfo is not None


def test_to_dict_wire_shape() -> None:
    p = NotificationPayload(
        title="Sleeping Alert",
        message="m",
        driver_id="D1",
        timestamp=datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc),
        data={"confidence": 0.9, "location": "X"},
    )

    assert p.to_dict() == {
        "title": "Sleeping Alert",
        "message": "m",
        "driver_id": "D1",
        "timestamp": "2026-01-01T10:00:00Z",
        "data": {"confidence": 0.9, "location": "X"},
    }


def test_to_dict_converts_offsets_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    p = NotificationPayload(
        title="t", message="m", driver_id="D1", timestamp=datetime(2026, 1, 1, 12, 0, 0, tzinfo=plus_two)
    )

    assert p.to_dict()["timestamp"] == "2026-01-01T10:00:00Z"


def test_to_dict_treats_naive_as_utc() -> None:
    p = NotificationPayload(title="t", message="m", driver_id="D1", timestamp=datetime(2026, 1, 1, 10, 0, 0))
    assert p.to_dict()["timestamp"] == "2026-01-01T10:00:00Z"


def test_payload_is_frozen() -> None:
    p = NotificationPayload(title="t", message="m", driver_id="D1", timestamp=datetime(2026, 1, 1))
    with pytest.raises(FrozenInstanceError):
        p.title = "x"  # type: ignore[misc]
