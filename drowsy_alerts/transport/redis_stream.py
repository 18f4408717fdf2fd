from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

import redis
import structlog

from drowsy_alerts.domain.errors import DecodeError, TransportError
from drowsy_alerts.domain.models import AlertEvent
from drowsy_alerts.transport.alert_codec import DEFAULT_SLEEPING_THRESHOLD, decode_alert, encode_alert

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RedisStreamConfig:
    """
    Connection and consumer-group settings for the alert stream.

    Parameters
    ----------
    host, port, password, db
        Redis connection settings.
    stream
        Stream key the detectors append to.
    group
        Consumer group shared by dispatcher instances.
    consumer
        Consumer name of this instance inside the group.
    block_ms
        Maximum time one read blocks waiting for entries. Keeps the receiver
        responsive to its stop signal.
    count
        Maximum entries returned by one read.
    socket_timeout_s
        Socket timeout; must exceed ``block_ms``.
    connect_timeout_s
        Timeout of the initial TCP connect.
    """

    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    db: int = 0
    stream: str = "sleeping-alerts"
    group: str = "notification-group"
    consumer: str = "notification-service"
    block_ms: int = 1000
    count: int = 10
    socket_timeout_s: float = 5.0
    connect_timeout_s: float = 5.0


@dataclass(frozen=True)
class StreamEntry:
    """
    One entry read from the stream.

    Exactly one of ``event`` / ``error`` is set: entries that fail to decode
    carry the decode error message instead of an event.
    """

    message_id: str
    event: Optional[AlertEvent] = None
    error: Optional[str] = None


class RedisStreamSource:
    """
    Alert event source backed by a Redis stream consumer group.

    Delivery is at-least-once: an entry stays pending in the group until
    :meth:`ack` is called for it.

    Parameters
    ----------
    cfg
        Stream settings.
    client
        Optional pre-built client (tests pass a fake). If None, one is created
        from ``cfg``.
    sleeping_threshold
        Passed to the decoder for status-less events.
    """

    def __init__(
        self,
        cfg: RedisStreamConfig,
        client: Optional[Any] = None,
        sleeping_threshold: float = DEFAULT_SLEEPING_THRESHOLD,
    ):
        self._cfg = cfg
        self._threshold = sleeping_threshold
        self._client = client or redis.Redis(
            host=cfg.host,
            port=cfg.port,
            password=cfg.password or None,
            db=cfg.db,
            decode_responses=True,
            socket_timeout=cfg.socket_timeout_s,
            socket_connect_timeout=cfg.connect_timeout_s,
            socket_keepalive=True,
        )

    @property
    def config(self) -> RedisStreamConfig:
        return self._cfg

    def connect(self) -> None:
        """
        Check connectivity and make sure the consumer group exists.

        The group is created at id ``0`` together with the stream; an existing
        group (``BUSYGROUP``) is not an error.

        Raises
        ------
        TransportError
            If Redis is unreachable or refuses to create the group.
        """
        try:
            self._client.ping()
        except redis.RedisError as e:
            raise TransportError(f"failed to connect to Redis at {self._cfg.host}:{self._cfg.port}: {e}") from e

        try:
            self._client.xgroup_create(self._cfg.stream, self._cfg.group, id="0", mkstream=True)
            logger.info("stream_group_created", stream=self._cfg.stream, group=self._cfg.group)
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise TransportError(f"failed to create consumer group: {e}") from e
        except redis.RedisError as e:
            raise TransportError(f"failed to create consumer group: {e}") from e

    def read(self) -> List[StreamEntry]:
        """
        Read new entries for this consumer, blocking up to ``block_ms``.

        Returns
        -------
        list of StreamEntry
            Entries in stream order; empty if nothing arrived.

        Raises
        ------
        TransportError
            On any Redis error.
        """
        try:
            resp = self._client.xreadgroup(
                groupname=self._cfg.group,
                consumername=self._cfg.consumer,
                streams={self._cfg.stream: ">"},
                count=self._cfg.count,
                block=self._cfg.block_ms,
            )
        except redis.RedisError as e:
            raise TransportError(f"error reading from stream: {e}") from e

        return [self._decode(mid, fields) for mid, fields in self._iter_messages(resp)]

    def ack(self, message_id: str) -> None:
        try:
            self._client.xack(self._cfg.stream, self._cfg.group, message_id)
        except redis.RedisError as e:
            raise TransportError(f"error acknowledging {message_id}: {e}") from e

    def publish(self, event: AlertEvent, maxlen: Optional[int] = None) -> str:
        """
        Append an event to the stream (development publisher).

        Parameters
        ----------
        event
            Event to append.
        maxlen
            Approximate cap on the stream length, if given.

        Returns
        -------
        str
            Id Redis assigned to the new entry.
        """
        try:
            mid = self._client.xadd(self._cfg.stream, encode_alert(event), maxlen=maxlen, approximate=True)
        except redis.RedisError as e:
            raise TransportError(f"error publishing to stream: {e}") from e
        return mid.decode("utf-8") if isinstance(mid, bytes) else str(mid)

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.warning("stream_close_failed", error=str(e))

    def _decode(self, message_id: Any, fields: Any) -> StreamEntry:
        mid = message_id.decode("utf-8") if isinstance(message_id, bytes) else str(message_id)
        try:
            event = decode_alert(fields or {}, self._threshold, message_id=mid)
        except DecodeError as e:
            return StreamEntry(message_id=mid, error=str(e))
        return StreamEntry(message_id=mid, event=event)

    @staticmethod
    def _iter_messages(resp: Any) -> Iterable[Tuple[Any, Any]]:
        if not resp:
            return []
        # [[stream, [(id, fields), ...]], ...]
        streams = resp.items() if isinstance(resp, dict) else resp
        out: List[Tuple[Any, Any]] = []
        for _name, messages in streams:
            for mid, fields in messages:
                out.append((mid, fields))
        return out
