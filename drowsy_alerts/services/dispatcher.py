from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict

import structlog

from drowsy_alerts.core.scheduler import RenotifyScheduler, RenotifyTimer
from drowsy_alerts.core.state.alert_store import AlertStateStore
from drowsy_alerts.domain.errors import DeliveryError, TargetNotFoundError
from drowsy_alerts.domain.models import AlertEvent, DriverStatus, utc_now
from drowsy_alerts.notification.base import NotificationGateway, NotificationPayload, TargetResolver
from drowsy_alerts.notification.delivery_pool import DeliveryWorkerPool
from drowsy_alerts.notification.payload import build_sleeping_payload

logger = structlog.get_logger(__name__)


@dataclass
class DispatchStats:
    """Counters for send attempts, by outcome."""

    attempted: int = 0
    suppressed: int = 0
    submitted: int = 0
    dropped: int = 0
    delivered: int = 0
    failed: int = 0
    lookup_failed: int = 0
    stale: int = 0


@dataclass
class AlertDispatcher:
    """
    Apply incoming alert events to the per-driver state machine.

    Responsibilities
    ----------------
    - SLEEPING on a NORMAL driver: transition, one immediate send attempt,
      start the re-notification timer.
    - NORMAL on a SLEEPING driver: transition, stop the timer.
    - Identical consecutive statuses are no-ops (no send, no timer change).
    - Rate-limit every send attempt, immediate or scheduled.
    - Hand sends to the delivery pool so the caller never waits on the gateway.

    Concurrency Model
    -----------------
    Event handling and timer ticks for one driver run under that driver's
    store lock. Ticks re-check ``timer.cancelled`` inside the lock, so once a
    NORMAL event has stopped the timer no further tick can send.
    Queued sends carry the driver's alert generation and re-check it under
    the same lock before delivering, so a send that waited in the pool past
    a recovery is skipped.

    Payload Policy
    --------------
    Every attempt builds a fresh payload from the latest SLEEPING event seen
    for the driver and the current time; ticks do not replay the first one.

    Parameters
    ----------
    store
        Per-driver alert state.
    scheduler
        Owner of the re-notification timers.
    gateway
        Notification delivery (e.g., webhook).
    targets
        Resolves the delivery target for a driver.
    pool
        Runs sends off the caller's thread.
    min_interval_s
        Minimum seconds between two sends for the same driver.
    clock
        Monotonic clock used by the rate limit.
    now_fn
        Wall clock used to stamp payloads.
    """

    store: AlertStateStore
    scheduler: RenotifyScheduler
    gateway: NotificationGateway
    targets: TargetResolver
    pool: DeliveryWorkerPool
    min_interval_s: float = 5.0
    clock: Callable[[], float] = time.monotonic
    now_fn: Callable[[], datetime] = utc_now

    _stats: DispatchStats = field(default_factory=DispatchStats, init=False, repr=False)
    _stats_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _closed: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _shutdown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def start(self) -> None:
        self.pool.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def handle_event(self, event: AlertEvent) -> bool:
        """
        Handle one decoded alert event.

        Parameters
        ----------
        event
            Incoming event.

        Returns
        -------
        bool
            True if the driver's status changed.
        """
        if self._closed.is_set():
            logger.warning("event_after_shutdown_ignored", driver_id=event.driver_id, status=event.status.value)
            return False

        driver_id = event.driver_id
        with self.store.driver_lock(driver_id):
            if event.status == DriverStatus.SLEEPING:
                self.store.remember_event(event)
                result = self.store.transition(driver_id, DriverStatus.SLEEPING)
                if not result.changed:
                    return False

                logger.info("driver_sleeping", driver_id=driver_id, confidence=event.confidence, location=event.location)
                self.notify_now(driver_id)
                if self.scheduler.start(driver_id, self._on_tick):
                    self.store.set_timer_active(driver_id, True)
                return True

            result = self.store.transition(driver_id, DriverStatus.NORMAL)
            if not result.changed:
                return False

            logger.info("driver_recovered", driver_id=driver_id)
            self.scheduler.stop(driver_id, wait=False)
            self.store.set_timer_active(driver_id, False)
            return True

    def notify_now(self, driver_id: str) -> bool:
        """
        Make one rate-limited send attempt for a driver.

        The rate-limit mark is taken before the send is queued; delivery
        failures do not roll it back.

        Returns
        -------
        bool
            True if a send was queued.
        """
        with self.store.driver_lock(driver_id):
            event = self.store.latest_event(driver_id)
            if event is None:
                return False

            self._count("attempted")
            if not self.store.try_mark_notified(driver_id, self.clock(), self.min_interval_s):
                self._count("suppressed")
                logger.debug("notification_suppressed", driver_id=driver_id)
                return False

            payload = build_sleeping_payload(event, now=self.now_fn())
            generation = self.store.generation(driver_id)

        if not self.pool.submit(driver_id, lambda: self._deliver(driver_id, generation, payload)):
            self._count("dropped")
            return False
        self._count("submitted")
        return True

    def shutdown(self, timeout: float = 5.0) -> None:
        """
        Stop accepting events, cancel all timers and drain in-flight sends.

        After this returns no notification is attempted. Safe to call twice.
        """
        with self._shutdown_lock:
            if self._closed.is_set():
                return
            self._closed.set()

        cancelled = self.scheduler.stop_all(timeout=timeout)
        for driver_id in self.store.sleeping_drivers():
            self.store.set_timer_active(driver_id, False)
        dropped = self.pool.stop(timeout=timeout)

        logger.info("dispatcher_stopped", timers_cancelled=cancelled, sends_discarded=dropped, **self.stats())

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return dict(vars(self._stats))

    def _on_tick(self, driver_id: str, timer: RenotifyTimer) -> None:
        with self.store.driver_lock(driver_id):
            if timer.cancelled or self._closed.is_set():
                return
            self.notify_now(driver_id)

    def _deliver(self, driver_id: str, generation: int, payload: NotificationPayload) -> None:
        # The send may have waited in the pool; drop it if the driver has
        # recovered (or the service stopped) since it was queued.
        with self.store.driver_lock(driver_id):
            if self._closed.is_set() or not self.store.is_current_alert(driver_id, generation):
                self._count("stale")
                logger.info("stale_notification_skipped", driver_id=driver_id)
                return

        try:
            target = self.targets.lookup(driver_id)
        except TargetNotFoundError as e:
            self._count("lookup_failed")
            logger.warning("notification_target_missing", driver_id=driver_id, error=str(e))
            return

        try:
            self.gateway.deliver(target, payload)
        except DeliveryError as e:
            self._count("failed")
            logger.error("notification_delivery_failed", driver_id=driver_id, error=str(e), status_code=e.status_code)
            return

        self._count("delivered")

    def _count(self, name: str) -> None:
        with self._stats_lock:
            setattr(self._stats, name, getattr(self._stats, name) + 1)
