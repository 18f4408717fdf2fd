"""
Unit tests for drowsy_alerts.core.state.alert_store.AlertStateStore.

These tests validate:
- unseen drivers read as NORMAL without creating records
- transition() is idempotent on repeated statuses
- the rate-limit mark (try_mark_notified)
- latest-event bookkeeping and record snapshots
"""

from __future__ import annotations

from drowsy_alerts.core.state.alert_store import AlertStateStore
from drowsy_alerts.domain.models import AlertEvent, DriverStatus


def test_get_status_defaults_to_normal_without_creating_record() -> None:
    store = AlertStateStore()

    assert store.get_status("ghost") is DriverStatus.NORMAL
    assert store.record("ghost") is None


def test_transition_changes_then_is_idempotent() -> None:
    store = AlertStateStore()

    first = store.transition("D1", DriverStatus.SLEEPING)
    second = store.transition("D1", DriverStatus.SLEEPING)

    assert first.changed is True
    assert first.previous is DriverStatus.NORMAL
    assert second.changed is False
    assert second.previous is DriverStatus.SLEEPING
    assert store.get_status("D1") is DriverStatus.SLEEPING


def test_transition_normal_on_unseen_driver_is_noop() -> None:
    store = AlertStateStore()

    res = store.transition("D9", DriverStatus.NORMAL)

    assert res.changed is False
    assert res.previous is DriverStatus.NORMAL
    assert store.record("D9") is None


def test_transition_back_to_normal() -> None:
    store = AlertStateStore()
    store.transition("D1", DriverStatus.SLEEPING)

    res = store.transition("D1", DriverStatus.NORMAL)

    assert res.changed is True
    assert res.previous is DriverStatus.SLEEPING
    assert store.get_status("D1") is DriverStatus.NORMAL


def test_try_mark_notified_enforces_min_interval() -> None:
    store = AlertStateStore()

    assert store.try_mark_notified("D1", now=100.0, min_interval_s=5.0) is True
    assert store.try_mark_notified("D1", now=104.9, min_interval_s=5.0) is False
    assert store.try_mark_notified("D1", now=105.0, min_interval_s=5.0) is True

    rec = store.record("D1")
    assert rec is not None
    assert rec.last_notified_at == 105.0


def test_suppressed_attempt_does_not_move_last_notified() -> None:
    store = AlertStateStore()
    store.try_mark_notified("D1", now=10.0, min_interval_s=5.0)
    store.try_mark_notified("D1", now=12.0, min_interval_s=5.0)

    rec = store.record("D1")
    assert rec is not None
    assert rec.last_notified_at == 10.0


def test_rate_limit_is_per_driver() -> None:
    store = AlertStateStore()

    assert store.try_mark_notified("D1", now=0.0, min_interval_s=5.0) is True
    assert store.try_mark_notified("D2", now=1.0, min_interval_s=5.0) is True


def test_remember_event_keeps_latest() -> None:
    store = AlertStateStore()
    e1 = AlertEvent(driver_id="D1", status=DriverStatus.SLEEPING, confidence=0.9)
    e2 = AlertEvent(driver_id="D1", status=DriverStatus.SLEEPING, confidence=0.95)

    store.remember_event(e1)
    store.remember_event(e2)

    assert store.latest_event("D1") is e2
    assert store.latest_event("other") is None


def test_record_returns_copy() -> None:
    store = AlertStateStore()
    store.transition("D1", DriverStatus.SLEEPING)
    store.set_timer_active("D1", True)

    snap = store.record("D1")
    assert snap is not None
    snap.timer_active = False

    again = store.record("D1")
    assert again is not None
    assert again.timer_active is True


def test_sleeping_drivers_lists_only_sleeping() -> None:
    store = AlertStateStore()
    store.transition("D1", DriverStatus.SLEEPING)
    store.transition("D2", DriverStatus.SLEEPING)
    store.transition("D2", DriverStatus.NORMAL)
    store.try_mark_notified("D3", now=0.0, min_interval_s=1.0)

    assert store.sleeping_drivers() == ["D1"]


def test_driver_lock_is_reentrant() -> None:
    store = AlertStateStore()

    with store.driver_lock("D1"):
        with store.driver_lock("D1"):
            res = store.transition("D1", DriverStatus.SLEEPING)

    assert res.changed is True


def test_alert_generation_tracks_episodes() -> None:
    store = AlertStateStore()
    assert store.generation("D1") == 0
    assert store.is_current_alert("D1", 0) is False

    store.transition("D1", DriverStatus.SLEEPING)
    first = store.generation("D1")
    store.transition("D1", DriverStatus.SLEEPING)

    assert store.generation("D1") == first
    assert store.is_current_alert("D1", first) is True

    store.transition("D1", DriverStatus.NORMAL)
    assert store.is_current_alert("D1", first) is False

    store.transition("D1", DriverStatus.SLEEPING)
    assert store.is_current_alert("D1", first) is False
    assert store.is_current_alert("D1", store.generation("D1")) is True
