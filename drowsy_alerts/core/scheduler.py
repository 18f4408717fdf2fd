"""
Re-notification scheduler.

Owns one recurring timer per driver in the SLEEPING state. A timer is a daemon
thread that waits on a cancellation event with the interval as timeout, so a
cancel interrupts the wait immediately instead of letting one more tick fire.

Per-driver lifecycle::

    Idle --start--> Active --stop--> Idle
    Active --tick--> Active   (calls on_tick)

After `RenotifyScheduler.stop_all` every driver is Idle and no new timers
can be started.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

TickCallback = Callable[[str, "RenotifyTimer"], None]


class RenotifyTimer:
    """
    Periodic timer for a single driver.

    Parameters
    ----------
    driver_id
        Driver this timer re-notifies for.
    interval_s
        Seconds between two ticks.
    on_tick
        Called as ``on_tick(driver_id, timer)`` from the timer thread. The
        callback receives the timer so it can check `cancelled` once it holds
        whatever lock serializes it against `stop`.
    """

    def __init__(self, driver_id: str, interval_s: float, on_tick: TickCallback):
        self.driver_id = driver_id
        self._interval_s = interval_s
        self._on_tick = on_tick
        self._cancel = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"renotify-{driver_id}", daemon=True)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def cancel(self) -> None:
        self._cancel.set()

    def join(self, timeout: float | None = 2.0) -> None:
        """
        Wait for the timer thread to exit.

        Joining from inside the timer's own thread is a no-op.
        """
        if threading.current_thread() is self._thread:
            return
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        logger.info("renotify_timer_started", driver_id=self.driver_id, interval_s=self._interval_s)
        while not self._cancel.wait(self._interval_s):
            try:
                self._on_tick(self.driver_id, self)
            except Exception:
                logger.exception("renotify_tick_failed", driver_id=self.driver_id)
        logger.info("renotify_timer_stopped", driver_id=self.driver_id)


class RenotifyScheduler:
    """
    Registry of per-driver re-notification timers.

    Guarantees
    ----------
    - At most one timer per driver: `start` on an active driver is a no-op.
    - `stop` removes and cancels the timer; with ``wait=True`` it also joins the
      timer thread so an in-flight tick has completed when it returns.
    - `stop_all` cancels and joins every timer, then refuses further starts.

    Parameters
    ----------
    interval_s
        Tick interval for every timer created by this scheduler.
    """

    def __init__(self, interval_s: float = 5.0):
        self._interval_s = interval_s
        self._timers: Dict[str, RenotifyTimer] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def interval_s(self) -> float:
        return self._interval_s

    def start(self, driver_id: str, on_tick: TickCallback) -> bool:
        """
        Start the periodic timer for a driver.

        Returns
        -------
        bool
            True if a timer was started, False if one was already active or
            the scheduler has been shut down.
        """
        with self._lock:
            if self._closed:
                logger.warning("renotify_start_after_shutdown", driver_id=driver_id)
                return False
            if driver_id in self._timers:
                return False
            timer = RenotifyTimer(driver_id, self._interval_s, on_tick)
            self._timers[driver_id] = timer
            timer.start()
        return True

    def stop(self, driver_id: str, wait: bool = True, timeout: float | None = 2.0) -> bool:
        """
        Cancel the timer for a driver, if any.

        Parameters
        ----------
        driver_id
            Driver identifier.
        wait
            Join the timer thread before returning. Callers holding a lock the
            tick callback also takes must pass False and re-check
            `RenotifyTimer.cancelled` inside that lock instead.
        timeout
            Join timeout in seconds.

        Returns
        -------
        bool
            True if a timer existed and was cancelled.
        """
        with self._lock:
            timer = self._timers.pop(driver_id, None)
        if timer is None:
            return False

        timer.cancel()
        if wait:
            timer.join(timeout=timeout)
        return True

    def stop_all(self, timeout: float = 5.0) -> int:
        """
        Cancel every active timer and wait for their threads to exit.

        Parameters
        ----------
        timeout
            Overall time budget in seconds for joining the timer threads.

        Returns
        -------
        int
            Number of timers cancelled.
        """
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()

        for t in timers:
            t.cancel()

        deadline = time.monotonic() + timeout
        for t in timers:
            t.join(timeout=max(0.0, deadline - time.monotonic()))

        stuck = [t.driver_id for t in timers if t.is_alive()]
        if stuck:
            logger.warning("renotify_timers_still_running", drivers=stuck)
        return len(timers)

    def is_active(self, driver_id: str) -> bool:
        with self._lock:
            return driver_id in self._timers

    def active_drivers(self) -> List[str]:
        with self._lock:
            return list(self._timers)

    def get(self, driver_id: str) -> Optional[RenotifyTimer]:
        with self._lock:
            return self._timers.get(driver_id)
