from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import structlog

from drowsy_alerts.domain.errors import DecodeError
from drowsy_alerts.domain.models import AlertEvent, DriverStatus, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_SLEEPING_THRESHOLD = 0.8

# fromisoformat takes at most microseconds; producers may send nanoseconds.
_FRACTION = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")

_STATUS_ALIASES = {
    "sleeping": DriverStatus.SLEEPING,
    "sleep": DriverStatus.SLEEPING,
    "drowsy": DriverStatus.SLEEPING,
    "normal": DriverStatus.NORMAL,
    "awake": DriverStatus.NORMAL,
}


def _parse_ts(value: Any) -> datetime:
    """
    Parse an RFC 3339 / ISO-8601 timestamp or a UNIX epoch number.

    Naive timestamps are taken as UTC. Fractional seconds are cut or padded
    to microseconds.

    Raises
    ------
    ValueError
        If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)

    s = str(value).strip()
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    s = _FRACTION.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", s)
    ts = datetime.fromisoformat(s)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_status(obj: Mapping[str, Any], confidence: Optional[float], threshold: float) -> DriverStatus:
    raw = obj.get("status")
    if raw is None:
        # Detectors that only report a score: the score decides.
        if confidence is None:
            raise DecodeError("event has neither status nor confidence")
        return DriverStatus.SLEEPING if confidence >= threshold else DriverStatus.NORMAL

    status = _STATUS_ALIASES.get(str(raw).strip().lower())
    if status is None:
        raise DecodeError(f"unknown status: {raw!r}")
    return status


def decode_obj(
    obj: Mapping[str, Any],
    sleeping_threshold: float = DEFAULT_SLEEPING_THRESHOLD,
    message_id: Optional[str] = None,
    arrived_at: Optional[datetime] = None,
) -> AlertEvent:
    """
    Decode a JSON object into an `AlertEvent`.

    Fields
    ------
    - ``driver_id`` (required; str or int, stored as str)
    - ``status`` ("sleeping" / "normal"); if absent, derived from
      ``confidence >= sleeping_threshold``
    - ``confidence`` (number, optional)
    - ``location`` (string, optional)
    - ``observed_at`` or ``timestamp`` (optional; arrival time is used when
      absent or unparseable)

    Raises
    ------
    DecodeError
        If a required field is missing or a value has the wrong type.
    """
    try:
        driver = obj["driver_id"]
    except KeyError:
        raise DecodeError("missing driver_id") from None
    if driver is None or isinstance(driver, bool) or not isinstance(driver, (str, int)) or str(driver).strip() == "":
        raise DecodeError(f"invalid driver_id: {driver!r}")

    try:
        confidence = float(obj["confidence"]) if obj.get("confidence") is not None else None
    except (TypeError, ValueError):
        raise DecodeError(f"invalid confidence: {obj.get('confidence')!r}") from None

    status = _parse_status(obj, confidence, sleeping_threshold)

    location = obj.get("location")
    raw_ts = obj.get("observed_at", obj.get("timestamp"))
    observed_at = arrived_at or utc_now()
    if raw_ts not in (None, ""):
        try:
            observed_at = _parse_ts(raw_ts)
        except (TypeError, ValueError, OverflowError, OSError):
            # The status signal still counts; only the timestamp is replaced.
            logger.warning(
                "invalid_timestamp_replaced", driver_id=str(driver), value=str(raw_ts), message_id=message_id
            )

    return AlertEvent(
        driver_id=str(driver).strip(),
        status=status,
        confidence=confidence,
        location=str(location) if location is not None else None,
        observed_at=observed_at,
        message_id=message_id,
    )


def iter_json_objects(text: str) -> Iterator[Dict[str, Any]]:
    """
    Yield the JSON objects found in a string.

    Tolerates several objects concatenated without a delimiter, e.g.
    ``'{"a": 1}{"b": 2}'``. Non-object JSON values are skipped.

    Raises
    ------
    json.JSONDecodeError
        On malformed JSON.
    """
    s = text.strip()
    dec = json.JSONDecoder()
    i, n = 0, len(s)

    while i < n:
        while i < n and s[i].isspace():
            i += 1
        if i >= n:
            break
        obj, i = dec.raw_decode(s, i)
        if isinstance(obj, dict):
            yield obj


def decode_alert(
    fields: Mapping[Union[str, bytes], Any],
    sleeping_threshold: float = DEFAULT_SLEEPING_THRESHOLD,
    message_id: Optional[str] = None,
) -> AlertEvent:
    """
    Decode one stream entry into an `AlertEvent`.

    The entry either carries a ``data`` field holding a JSON document (the
    producer's format) or the event fields directly.

    Parameters
    ----------
    fields
        Stream entry fields. Bytes keys/values are decoded as UTF-8.
    sleeping_threshold
        Confidence at or above which a status-less event counts as SLEEPING.
    message_id
        Stream entry id, copied onto the event.

    Raises
    ------
    DecodeError
        If the entry is malformed.
    """
    norm: Dict[str, Any] = {}
    try:
        for k, v in fields.items():
            key = k.decode("utf-8") if isinstance(k, bytes) else str(k)
            norm[key] = v.decode("utf-8") if isinstance(v, bytes) else v
    except UnicodeDecodeError as e:
        raise DecodeError(f"entry is not valid UTF-8: {e}") from None

    if "data" not in norm:
        return decode_obj(norm, sleeping_threshold, message_id=message_id)

    try:
        for obj in iter_json_objects(str(norm["data"])):
            return decode_obj(obj, sleeping_threshold, message_id=message_id)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON in data field: {e}") from None

    raise DecodeError("no JSON object found in data field")


def encode_alert(event: AlertEvent) -> Dict[str, str]:
    """
    Encode an event as stream entry fields in the producer's format.

    The event is serialized into a single ``data`` field holding a JSON
    object; ``decode_alert`` reads it back.

    Parameters
    ----------
    event
        Event to serialize. ``message_id`` is not included (Redis assigns it).

    Returns
    -------
    dict
        Field mapping suitable for XADD.
    """
    payload: Dict[str, Any] = {
        "driver_id": event.driver_id,
        "status": event.status.value,
        "observed_at": event.observed_at.isoformat(),
    }
    if event.confidence is not None:
        payload["confidence"] = event.confidence
    if event.location is not None:
        payload["location"] = event.location
    return {"data": json.dumps(payload)}
