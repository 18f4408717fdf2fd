from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional

from drowsy_alerts.domain.models import AlertEvent, DriverAlertRecord, DriverStatus, TransitionResult


@dataclass
class AlertStateStore:
    """
    Thread-safe in-memory table of per-driver alert records.

    The store owns one `DriverAlertRecord` per driver seen so far and defines
    the only mutation paths for it.

    Concurrency Model
    -----------------
    - `_lock` guards the record and lock maps only (creation and lookup).
    - Each driver has its own re-entrant lock. Every read-modify-write on a
      record takes that lock, so operations on the same driver are serialized
      while different drivers never contend.
    - Callers that need several operations to be atomic (the dispatcher and
      timer ticks) hold `driver_lock(driver_id)` around them; the lock is
      re-entrant so the individual methods still work inside it.

    Memory
    ------
    One record and one lock are kept per driver ever seen; both live for the
    life of the process. The driver population of a fleet is bounded, so the
    maps are too. Locks are never dropped: a waiter could otherwise end up
    holding a different lock than a later caller.

    Attributes
    ----------
    _records
        Mapping driver_id -> DriverAlertRecord.
    _driver_locks
        Mapping driver_id -> per-driver RLock.
    """

    _records: Dict[str, DriverAlertRecord] = field(default_factory=dict, init=False, repr=False)
    _driver_locks: Dict[str, threading.RLock] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def _lock_for(self, driver_id: str) -> threading.RLock:
        with self._lock:
            lk = self._driver_locks.get(driver_id)
            if lk is None:
                lk = threading.RLock()
                self._driver_locks[driver_id] = lk
            return lk

    def _get_or_create(self, driver_id: str) -> DriverAlertRecord:
        with self._lock:
            rec = self._records.get(driver_id)
            if rec is None:
                rec = DriverAlertRecord(driver_id=driver_id)
                self._records[driver_id] = rec
            return rec

    @contextmanager
    def driver_lock(self, driver_id: str) -> Iterator[None]:
        """
        Hold the per-driver lock for the duration of the block.

        Parameters
        ----------
        driver_id
            Driver whose operations should be serialized.
        """
        lk = self._lock_for(driver_id)
        with lk:
            yield

    def get_status(self, driver_id: str) -> DriverStatus:
        """
        Return the current status of a driver.

        Unseen drivers are NORMAL; no record is created.
        """
        with self._lock:
            rec = self._records.get(driver_id)
            return rec.current_status if rec is not None else DriverStatus.NORMAL

    def transition(self, driver_id: str, new_status: DriverStatus) -> TransitionResult:
        """
        Atomically move a driver to `new_status`.

        Parameters
        ----------
        driver_id
            Driver identifier.
        new_status
            Reported status.

        Returns
        -------
        TransitionResult
            ``changed=False`` and no mutation when the status is already
            `new_status`; otherwise the record is updated and ``changed=True``.
        """
        with self.driver_lock(driver_id):
            previous = self.get_status(driver_id)
            if previous == new_status:
                return TransitionResult(changed=False, previous=previous)

            rec = self._get_or_create(driver_id)
            rec.current_status = new_status
            rec.alert_generation += 1
            return TransitionResult(changed=True, previous=previous)

    def try_mark_notified(self, driver_id: str, now: float, min_interval_s: float) -> bool:
        """
        Apply the rate limit for one send attempt.

        The timestamp is recorded before the caller delivers, so two
        overlapping attempts cannot both pass.

        Parameters
        ----------
        driver_id
            Driver identifier.
        now
            Monotonic clock reading for this attempt.
        min_interval_s
            Minimum seconds between two sends for the same driver.

        Returns
        -------
        bool
            True if the send may proceed.
        """
        with self.driver_lock(driver_id):
            rec = self._get_or_create(driver_id)
            if rec.last_notified_at is not None and now - rec.last_notified_at < min_interval_s:
                return False
            rec.last_notified_at = now
            return True

    def is_current_alert(self, driver_id: str, generation: int) -> bool:
        """
        Return True if the driver is still SLEEPING in the given alert episode.

        A send captured during one SLEEPING episode is stale once the driver
        has recovered, even if they have fallen asleep again since.
        """
        with self.driver_lock(driver_id):
            rec = self._records.get(driver_id)
            return (
                rec is not None
                and rec.current_status == DriverStatus.SLEEPING
                and rec.alert_generation == generation
            )

    def generation(self, driver_id: str) -> int:
        with self.driver_lock(driver_id):
            rec = self._records.get(driver_id)
            return rec.alert_generation if rec is not None else 0

    def remember_event(self, event: AlertEvent) -> None:
        """
        Keep the latest SLEEPING event so later ticks can build fresh payloads.
        """
        with self.driver_lock(event.driver_id):
            self._get_or_create(event.driver_id).latest_event = event

    def latest_event(self, driver_id: str) -> Optional[AlertEvent]:
        with self.driver_lock(driver_id):
            rec = self._records.get(driver_id)
            return rec.latest_event if rec is not None else None

    def set_timer_active(self, driver_id: str, active: bool) -> None:
        with self.driver_lock(driver_id):
            self._get_or_create(driver_id).timer_active = active

    def record(self, driver_id: str) -> Optional[DriverAlertRecord]:
        """
        Return a copy of a driver's record, or None if the driver is unseen.
        """
        with self.driver_lock(driver_id):
            rec = self._records.get(driver_id)
            return replace(rec) if rec is not None else None

    def sleeping_drivers(self) -> List[str]:
        """
        Return ids of drivers currently in the SLEEPING state.
        """
        with self._lock:
            return [d for d, r in self._records.items() if r.current_status == DriverStatus.SLEEPING]
