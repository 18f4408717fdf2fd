from __future__ import annotations

import threading

import structlog

from drowsy_alerts.domain.errors import TransportError
from drowsy_alerts.services.dispatcher import AlertDispatcher
from drowsy_alerts.transport.redis_stream import RedisStreamSource

logger = structlog.get_logger(__name__)


class AlertStreamReceiverThread:
    """
    Dedicated consumer thread that feeds stream entries to the dispatcher.

    Responsibilities
    ----------------
    - Read entries from the Redis stream in order.
    - Hand each decoded event to `AlertDispatcher.handle_event`, then ack it.
    - Ack and drop entries that fail to decode.
    - On transport errors, wait ``reconnect_delay_s`` and re-run the
      connect/group setup before reading again.

    Stop Behavior
    -------------
    The stop event is checked between reads and between entries. Reads block
    at most ``block_ms``, so a stop is observed within one read. Entries not
    yet handed to the dispatcher stay unacknowledged and are redelivered to
    the group later.

    Parameters
    ----------
    source
        Stream source, already connected once at startup.
    dispatcher
        Alert dispatcher receiving decoded events.
    stop_event
        Shared stop signal.
    reconnect_delay_s
        Fixed backoff after a transport error.
    """

    def __init__(
        self,
        source: RedisStreamSource,
        dispatcher: AlertDispatcher,
        stop_event: threading.Event,
        reconnect_delay_s: float = 1.0,
    ):
        self._source = source
        self._dispatcher = dispatcher
        self._stop = stop_event
        self._reconnect_delay_s = reconnect_delay_s
        self._thread = threading.Thread(target=self._run, name="stream-receiver", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = 5.0) -> None:
        self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        needs_setup = False

        while not self._stop.is_set():
            try:
                if needs_setup:
                    self._source.connect()
                    needs_setup = False
                    logger.info("stream_reconnected")
                entries = self._source.read()
            except TransportError as e:
                if self._stop.is_set():
                    break
                logger.error("stream_read_failed", error=str(e), retry_in_s=self._reconnect_delay_s)
                needs_setup = True
                self._stop.wait(self._reconnect_delay_s)
                continue

            for entry in entries:
                if self._stop.is_set():
                    break

                if entry.event is None:
                    logger.warning("alert_decode_failed", message_id=entry.message_id, error=entry.error)
                else:
                    try:
                        self._dispatcher.handle_event(entry.event)
                    except Exception:
                        logger.exception("alert_handling_failed", message_id=entry.message_id)

                try:
                    self._source.ack(entry.message_id)
                except TransportError as e:
                    logger.error("stream_ack_failed", message_id=entry.message_id, error=str(e))
