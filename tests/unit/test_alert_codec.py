"""
Unit tests for drowsy_alerts.transport.alert_codec.

These tests validate stream entry decoding:
- the producer's ``data`` JSON field and flat field entries
- status derived from confidence when no status is given
- integer driver ids, timestamps and bytes fields
- malformed entries raising DecodeError
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from drowsy_alerts.domain.errors import DecodeError
from drowsy_alerts.domain.models import DriverStatus
from drowsy_alerts.transport.alert_codec import decode_alert, decode_obj, iter_json_objects


def test_decode_data_field_with_explicit_status() -> None:
    fields = {
        "data": json.dumps(
            {
                "id": "a1",
                "driver_id": "D1",
                "status": "sleeping",
                "confidence": 0.93,
                "location": "Route 9",
                "observed_at": "2026-01-01T10:00:00Z",
            }
        )
    }

    ev = decode_alert(fields, message_id="1-0")

    assert ev.driver_id == "D1"
    assert ev.status is DriverStatus.SLEEPING
    assert ev.confidence == pytest.approx(0.93)
    assert ev.location == "Route 9"
    assert ev.observed_at == datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    assert ev.message_id == "1-0"


@pytest.mark.parametrize(
    ("confidence", "expected"),
    [(0.8, DriverStatus.SLEEPING), (0.95, DriverStatus.SLEEPING), (0.79, DriverStatus.NORMAL)],
)
def test_status_derived_from_confidence(confidence: float, expected: DriverStatus) -> None:
    fields = {"data": json.dumps({"driver_id": "D1", "confidence": confidence, "location": "X"})}

    assert decode_alert(fields).status is expected


def test_custom_sleeping_threshold() -> None:
    fields = {"data": json.dumps({"driver_id": "D1", "confidence": 0.6})}

    assert decode_alert(fields, sleeping_threshold=0.5).status is DriverStatus.SLEEPING


def test_integer_driver_id_is_stringified() -> None:
    ev = decode_obj({"driver_id": 42, "status": "normal"})
    assert ev.driver_id == "42"


def test_flat_entry_fields() -> None:
    ev = decode_alert({"driver_id": "D7", "status": "NORMAL", "confidence": "0.1"})

    assert ev.driver_id == "D7"
    assert ev.status is DriverStatus.NORMAL
    assert ev.confidence == pytest.approx(0.1)


def test_bytes_fields_are_decoded() -> None:
    ev = decode_alert({b"data": json.dumps({"driver_id": "D1", "status": "sleeping"}).encode("utf-8")})
    assert ev.driver_id == "D1"
    assert ev.status is DriverStatus.SLEEPING


def test_missing_timestamp_uses_arrival_time() -> None:
    before = datetime.now(timezone.utc)
    ev = decode_obj({"driver_id": "D1", "status": "normal"})
    assert ev.observed_at >= before


def test_epoch_timestamp() -> None:
    ev = decode_obj({"driver_id": "D1", "status": "normal", "timestamp": 0})
    assert ev.observed_at == datetime(1970, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2026-01-01T10:00:00.123456789Z", datetime(2026, 1, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)),
        ("2026-01-01T10:00:00.5+02:00", datetime(2026, 1, 1, 8, 0, 0, 500000, tzinfo=timezone.utc)),
    ],
)
def test_fractional_seconds_are_normalized(raw: str, expected: datetime) -> None:
    ev = decode_obj({"driver_id": "D1", "status": "sleeping", "observed_at": raw})
    assert ev.observed_at == expected


def test_unparseable_timestamp_falls_back_to_arrival_time() -> None:
    arrived = datetime(2026, 2, 3, 4, 5, 6, tzinfo=timezone.utc)

    ev = decode_obj({"driver_id": "D1", "status": "sleeping", "observed_at": "yesterday"}, arrived_at=arrived)

    assert ev.status is DriverStatus.SLEEPING
    assert ev.observed_at == arrived


def test_first_of_concatenated_objects_is_used() -> None:
    text = json.dumps({"driver_id": "D1", "status": "sleeping"}) + json.dumps({"driver_id": "D2", "status": "normal"})
    ev = decode_alert({"data": text})
    assert ev.driver_id == "D1"


@pytest.mark.parametrize(
    "fields",
    [
        {"data": "{not json"},
        {"data": "[]"},
        {"data": json.dumps({"status": "sleeping"})},
        {"data": json.dumps({"driver_id": "", "status": "sleeping"})},
        {"data": json.dumps({"driver_id": None, "status": "sleeping"})},
        {"data": json.dumps({"driver_id": "D1", "status": "dozing"})},
        {"data": json.dumps({"driver_id": "D1"})},
        {"data": json.dumps({"driver_id": "D1", "confidence": "high"})},
        {b"data": b"\xff\xfe"},
    ],
)
def test_malformed_entries_raise_decode_error(fields) -> None:
    with pytest.raises(DecodeError):
        decode_alert(fields)


def test_iter_json_objects_skips_non_objects() -> None:
    assert list(iter_json_objects('[1] {"a": 1}  {"b": 2}')) == [{"a": 1}, {"b": 2}]
    assert list(iter_json_objects("   ")) == []
