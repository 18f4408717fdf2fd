from __future__ import annotations

import threading
from dataclasses import dataclass

import structlog

from drowsy_alerts.runtime.stream_receiver_thread import AlertStreamReceiverThread
from drowsy_alerts.services.dispatcher import AlertDispatcher
from drowsy_alerts.transport.redis_stream import RedisStreamSource

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AppRuntimeConfig:
    """
    Runtime configuration for thread orchestration.

    Parameters
    ----------
    reconnect_delay_s
        Delay (seconds) between reconnect attempts after stream errors.
    shutdown_timeout_s
        Budget for joining the receiver, timer and delivery threads.
    """

    reconnect_delay_s: float = 1.0
    shutdown_timeout_s: float = 5.0


class AppRuntime:
    """
    Thread supervisor for the dispatcher service.

    Thread Topology
    ---------------
    1) AlertStreamReceiverThread (I/O)
       - reads the Redis stream, decodes entries
       - calls AlertDispatcher.handle_event, then acks
    2) renotify-<driver> timer threads, owned by the scheduler
    3) delivery-worker-N threads, owned by the delivery pool

    Shutdown Order
    --------------
    receiver stopped and joined (no new events) -> dispatcher.shutdown()
    (timers cancelled, in-flight sends drained) -> stream connection closed.
    """

    def __init__(self, cfg: AppRuntimeConfig, source: RedisStreamSource, dispatcher: AlertDispatcher):
        self._cfg = cfg
        self._source = source
        self._dispatcher = dispatcher
        self._stop = threading.Event()
        self._stopped = False
        self._lock = threading.Lock()

        self._receiver = AlertStreamReceiverThread(
            source=source,
            dispatcher=dispatcher,
            stop_event=self._stop,
            reconnect_delay_s=cfg.reconnect_delay_s,
        )

    @property
    def dispatcher(self) -> AlertDispatcher:
        return self._dispatcher

    def start(self) -> None:
        """
        Start delivery workers first, then the receiver.
        """
        self._dispatcher.start()
        self._receiver.start()
        logger.info("runtime_started")

    def stop(self) -> None:
        """
        Graceful shutdown. Safe to call more than once.
        """
        with self._lock:
            if self._stopped:
                return
            self._stopped = True

        logger.info("runtime_stopping")
        self._receiver.stop()
        self._receiver.join(timeout=self._cfg.shutdown_timeout_s)
        if self._receiver.is_alive():
            logger.warning("stream_receiver_still_running")

        self._dispatcher.shutdown(timeout=self._cfg.shutdown_timeout_s)
        self._source.close()
        logger.info("runtime_stopped")
