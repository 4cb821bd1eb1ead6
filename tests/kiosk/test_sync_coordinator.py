from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from src.attendance_sync.attendance_sync.core.enums import EventSource, EventType, SubjectType, SyncTrigger
from src.attendance_sync.attendance_sync.core.exceptions import ValidationError
from src.attendance_sync.attendance_sync.events.model import AttendanceEvent
from src.attendance_sync.attendance_sync.kiosk.idempotency import IdempotencyKeyGenerator
from src.attendance_sync.attendance_sync.kiosk.mobile import GeoFix, MobileCheckIn
from src.attendance_sync.attendance_sync.kiosk.queue import DurableLocalQueue
from src.attendance_sync.attendance_sync.kiosk.sync import SyncCoordinator

from tests.fakes import LoopbackApi, learner, make_container, staff


def _event(key: str, user_id: str = "L1", minute: int = 35) -> AttendanceEvent:
    return AttendanceEvent(
        idempotency_key=key,
        tenant_id="t1",
        branch_id="b1",
        subject_type=SubjectType.LEARNER,
        subject_user_id=user_id,
        event_type=EventType.CHECK_IN,
        source=EventSource.KIOSK_SCAN,
        captured_at_device=datetime(2026, 3, 2, 7, minute),
    )


def _setup(tmp_path, subjects=None):
    c = make_container(subjects or [learner("L1")])
    api = LoopbackApi(c)
    queue = DurableLocalQueue(tmp_path / "queue.sqlite3")
    return c, api, queue, SyncCoordinator(api, queue, branch_id="b1")


def test_sync_dequeues_acknowledged_and_parks_rejected(tmp_path):
    c, _, queue, coordinator = _setup(tmp_path)
    queue.enqueue(_event("k1"))
    queue.enqueue(_event("k2", user_id="ghost", minute=36))

    report = coordinator.sync(SyncTrigger.MANUAL)

    assert (report.sent, report.acknowledged, report.rejected, report.remaining) == (2, 1, 1, 0)
    assert report.ok
    assert [i.idempotency_key for i in queue.rejected()] == ["k2"]
    assert "k1" in c.events_repo.by_key
    assert coordinator.online


def test_failed_push_keeps_items_and_counts_retry(tmp_path):
    _, api, queue, coordinator = _setup(tmp_path)
    queue.enqueue(_event("k1"))
    api.offline = True

    report = coordinator.sync(SyncTrigger.PERIODIC)

    assert not report.ok
    assert report.remaining == 1
    assert queue.get("k1").retries == 1
    assert not coordinator.online


def test_replayed_push_after_crash_is_acknowledged_as_duplicate(tmp_path):
    c, _, queue, coordinator = _setup(tmp_path)
    event = _event("k1")
    c.sync_service.push({"events": [event.to_dict()]}, tenant_id="t1")
    queue.enqueue(event)

    report = coordinator.sync()

    assert report.acknowledged == 1
    assert queue.count() == 0
    assert len(c.events_repo.by_key) == 1


def test_concurrent_trigger_is_dropped(tmp_path):
    _, _, queue, coordinator = _setup(tmp_path)
    queue.enqueue(_event("k1"))

    with coordinator._running:
        assert coordinator.sync(SyncTrigger.PERIODIC) is None
    assert queue.count() == 1


def test_reconnect_triggers_sync_once(tmp_path):
    _, api, queue, coordinator = _setup(tmp_path)
    queue.enqueue(_event("k1"))

    first = coordinator.set_online(True)
    second = coordinator.set_online(True)

    assert first.trigger == SyncTrigger.RECONNECT
    assert second is None
    assert api.calls.count("push") == 1


def test_pull_caches_policy_and_devices(tmp_path):
    c, _, _, coordinator = _setup(tmp_path)
    c.policy_service.save({"branch_id": "b1", "anti_passback_minutes": 2}, tenant_id="t1")
    c.device_service.register({"branch_id": "b1", "device_code": "gate-1"}, tenant_id="t1")

    coordinator.sync()

    assert coordinator.config.policy["anti_passback_minutes"] == 2
    assert coordinator.config.devices[0]["device_code"] == "gate-1"


def test_requeue_and_discard_rejected(tmp_path):
    c, _, queue, coordinator = _setup(tmp_path)
    queue.enqueue(_event("k1", user_id="L2"))
    coordinator.sync()
    assert [i.idempotency_key for i in queue.rejected()] == ["k1"]

    # Learner enrolled after the scan: operator re-sends it.
    c.subjects_repo.upsert(learner("L2"))
    assert coordinator.requeue("k1")
    report = coordinator.sync()

    assert report.acknowledged == 1
    assert queue.count() == 0
    assert not coordinator.discard("k1")


def test_heartbeat_marks_online(tmp_path):
    _, api, _, coordinator = _setup(tmp_path)
    device = api.register_device(branch_id="b1", device_code="gate-1", device_name="Gate")

    assert coordinator.heartbeat(device["device_id"]) is True
    assert coordinator.online

    api.offline = True
    assert coordinator.heartbeat(device["device_id"]) is False
    assert not coordinator.online
    assert coordinator.heartbeat(None) is False


def test_mobile_check_in_uses_same_sync_path(tmp_path):
    c, _, queue, coordinator = _setup(tmp_path, [staff("S1")])
    coordinator.set_online(True)
    mobile = MobileCheckIn(
        coordinator=coordinator,
        keys=IdempotencyKeyGenerator("phone-S1"),
        tenant_id="t1",
        branch_id="b1",
        user_id="S1",
    )

    event, report = mobile.check_in(GeoFix(lat=10.77, lng=106.70, accuracy_m=12), now=datetime(2026, 3, 2, 7, 5))

    assert event.source == EventSource.PWA_GEO
    assert report.acknowledged == 1
    assert queue.count() == 0
    assert c.events_repo.by_key[event.idempotency_key].captured_lat == 10.77


def test_mobile_check_in_offline_stays_queued(tmp_path):
    _, _, queue, coordinator = _setup(tmp_path, [staff("S1")])
    mobile = MobileCheckIn(
        coordinator=coordinator,
        keys=IdempotencyKeyGenerator("phone-S1"),
        tenant_id="t1",
        branch_id="b1",
        user_id="S1",
    )

    _, report = mobile.check_out(GeoFix(lat=10.77, lng=106.70), now=datetime(2026, 3, 2, 16, 0))

    assert report is None
    assert queue.count() == 1


def test_mobile_rejects_impossible_fix(tmp_path):
    _, _, queue, coordinator = _setup(tmp_path, [staff("S1")])
    mobile = MobileCheckIn(
        coordinator=coordinator,
        keys=IdempotencyKeyGenerator("phone-S1"),
        tenant_id="t1",
        branch_id="b1",
        user_id="S1",
    )

    with pytest.raises(ValidationError):
        mobile.check_in(GeoFix(lat=123.0, lng=106.70))
    assert queue.count() == 0


def test_pull_seeds_direction_seen_at_another_gate(tmp_path):
    c, _, queue, coordinator = _setup(tmp_path)
    seen_at = datetime.now().replace(microsecond=0) - timedelta(minutes=1)
    other_gate = replace(_event("gate-2-k1"), captured_at_device=seen_at)
    c.sync_service.push({"events": [other_gate.to_dict()]}, tenant_id="t1")

    coordinator.sync()

    assert queue.last_seen("L1", seen_at.date()) == (EventType.CHECK_IN, seen_at)
