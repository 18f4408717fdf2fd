from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DeliveryPoolConfig:
    workers: int = 4
    max_queue: int = 1000
    poll_timeout_s: float = 0.5


class DeliveryWorkerPool:
    """
    Bounded pool of worker threads that run notification sends.

    Sends are taken off the event consumption path so a slow gateway cannot
    stall the stream receiver.

    Scheduling Model
    ----------------
    Each driver has at most one send waiting and one send running. The queue
    carries driver ids, not jobs; the job itself sits in a per-driver slot.

    - `submit` for a driver that already has a waiting send replaces that
      send (the newer payload wins) instead of queueing another one.
    - A driver whose send is running is not queued again until that send
      finishes; the worker finishing it re-queues the driver if a newer send
      arrived meanwhile.

    So a slow endpoint occupies at most one worker and one queue slot, and
    workers never wait on each other. Sends for one driver never overlap.

    Backpressure: `submit` drops the send when the queue is full.
    """

    def __init__(self, cfg: DeliveryPoolConfig | None = None):
        self._cfg = cfg or DeliveryPoolConfig()
        self._q: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=self._cfg.max_queue)
        self._stop = threading.Event()
        self._guard = threading.Lock()
        self._waiting: Dict[str, Callable[[], None]] = {}
        self._running: Set[str] = set()
        self._threads: List[threading.Thread] = [
            threading.Thread(target=self._run, name=f"delivery-worker-{i}", daemon=True)
            for i in range(max(1, self._cfg.workers))
        ]
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for t in self._threads:
            t.start()

    def submit(self, driver_id: str, run: Callable[[], None]) -> bool:
        """
        Queue a send for a driver.

        Returns
        -------
        bool
            True if the send will run (possibly replacing an older waiting
            send for the same driver). False if the pool is stopped or the
            queue is full (send dropped).
        """
        with self._guard:
            if self._stop.is_set():
                return False

            if driver_id in self._waiting:
                self._waiting[driver_id] = run
                logger.debug("delivery_coalesced", driver_id=driver_id)
                return True

            if driver_id not in self._running:
                try:
                    self._q.put_nowait(driver_id)
                except queue.Full:
                    logger.warning("delivery_queue_full", driver_id=driver_id)
                    return False
            self._waiting[driver_id] = run
            return True

    def stop(self, timeout: float = 5.0) -> int:
        """
        Stop the workers.

        Waiting sends are discarded; sends already running are waited for
        up to `timeout` seconds.

        Returns
        -------
        int
            Number of waiting sends discarded.
        """
        with self._guard:
            self._stop.set()
            dropped = len(self._waiting)
            self._waiting.clear()

        while True:
            try:
                self._q.get_nowait()
            except queue.Empty:
                break

        for _ in self._threads:
            try:
                self._q.put_nowait(None)
            except queue.Full:
                break

        if self._started:
            deadline = time.monotonic() + timeout
            for t in self._threads:
                t.join(timeout=max(0.0, deadline - time.monotonic()))
            alive = [t.name for t in self._threads if t.is_alive()]
            if alive:
                logger.warning("delivery_workers_still_running", workers=alive)

        if dropped:
            logger.info("delivery_jobs_discarded", count=dropped)
        return dropped

    def pending(self) -> int:
        """Number of sends waiting to run."""
        with self._guard:
            return len(self._waiting)

    def tracked_drivers(self) -> int:
        """Number of drivers with a send waiting or running."""
        with self._guard:
            return len(set(self._waiting) | self._running)

    def _take(self, driver_id: str) -> Optional[Callable[[], None]]:
        with self._guard:
            if self._stop.is_set():
                return None
            run = self._waiting.pop(driver_id, None)
            if run is not None:
                self._running.add(driver_id)
            return run

    def _finish(self, driver_id: str) -> None:
        with self._guard:
            self._running.discard(driver_id)
            if driver_id not in self._waiting or self._stop.is_set():
                return
            try:
                self._q.put_nowait(driver_id)
            except queue.Full:
                self._waiting.pop(driver_id, None)
                logger.warning("delivery_queue_full", driver_id=driver_id)

    def _run(self) -> None:
        while True:
            try:
                driver_id = self._q.get(timeout=self._cfg.poll_timeout_s)
            except queue.Empty:
                if self._stop.is_set():
                    break
                continue

            if driver_id is None:
                break

            run = self._take(driver_id)
            if run is None:
                continue
            try:
                run()
            except Exception:
                logger.exception("delivery_job_failed", driver_id=driver_id)
            finally:
                self._finish(driver_id)
