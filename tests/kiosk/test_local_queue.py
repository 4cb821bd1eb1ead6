from __future__ import annotations

from datetime import datetime

import pytest

from src.attendance_sync.attendance_sync.core.enums import EventSource, EventType, QueueItemStatus, SubjectType
from src.attendance_sync.attendance_sync.core.exceptions import StorageError
from src.attendance_sync.attendance_sync.events.model import AttendanceEvent
from src.attendance_sync.attendance_sync.kiosk.queue import DurableLocalQueue


def _event(key: str, minute: int = 35) -> AttendanceEvent:
    return AttendanceEvent(
        idempotency_key=key,
        tenant_id="t1",
        branch_id="b1",
        subject_type=SubjectType.LEARNER,
        subject_user_id=None,
        event_type=EventType.CHECK_IN,
        source=EventSource.KIOSK_SCAN,
        captured_at_device=datetime(2026, 3, 2, 7, minute),
        qr_token="PIN-4821",
        device_id="1",
    )


def test_enqueue_survives_reopen(tmp_path):
    path = tmp_path / "queue.sqlite3"
    q = DurableLocalQueue(path)
    q.enqueue(_event("k1"))
    q.enqueue(_event("k2", 36))
    q.close()

    reopened = DurableLocalQueue(path)

    assert reopened.count() == 2
    assert [i.idempotency_key for i in reopened.get_all()] == ["k1", "k2"]
    assert reopened.get_all()[0].event == _event("k1")
    reopened.close()


def test_fifo_and_dequeue(tmp_path):
    q = DurableLocalQueue(tmp_path / "q.sqlite3")
    for i, key in enumerate(["k3", "k1", "k2"]):
        q.enqueue(_event(key, 30 + i))

    assert [i.idempotency_key for i in q.pending()] == ["k3", "k1", "k2"]
    assert q.dequeue("k1") is True
    assert q.dequeue("k1") is False
    assert q.dequeue("never-queued") is False
    assert [i.idempotency_key for i in q.get_all()] == ["k3", "k2"]
    assert q.count() == 2


def test_enqueue_same_key_twice_keeps_one_item(tmp_path):
    q = DurableLocalQueue(tmp_path / "q.sqlite3")

    q.enqueue(_event("k1"))
    q.enqueue(_event("k1", 50))

    assert q.count() == 1
    assert q.get("k1").event.captured_at_device.minute == 35


def test_rejected_items_leave_pending_until_operator_decides(tmp_path):
    q = DurableLocalQueue(tmp_path / "q.sqlite3")
    q.enqueue(_event("k1"))
    q.enqueue(_event("k2", 36))

    q.mark_rejected("k1", "Unknown PIN")

    assert [i.idempotency_key for i in q.pending()] == ["k2"]
    rejected = q.rejected()[0]
    assert rejected.status == QueueItemStatus.REJECTED
    assert rejected.last_error == "Unknown PIN"

    assert q.requeue("k1") is True
    assert [i.idempotency_key for i in q.pending()] == ["k1", "k2"]

    q.mark_rejected("k2", "bad")
    assert q.discard("k2") is True
    assert q.discard("k1") is False
    assert q.count() == 1


def test_increment_retry(tmp_path):
    q = DurableLocalQueue(tmp_path / "q.sqlite3")
    q.enqueue(_event("k1"))

    q.increment_retry(["k1"], error="timeout")
    q.increment_retry(["k1"], error="timeout")

    item = q.get("k1")
    assert item.retries == 2
    assert item.last_error == "timeout"


def test_unusable_location_raises_storage_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")

    with pytest.raises(StorageError):
        DurableLocalQueue(blocker / "queue.sqlite3")


def test_write_after_close_raises_storage_error(tmp_path):
    q = DurableLocalQueue(tmp_path / "q.sqlite3")
    q.close()

    with pytest.raises(StorageError):
        q.enqueue(_event("k1"))


def test_last_seen_is_written_with_the_event_and_keeps_newest(tmp_path):
    path = tmp_path / "q.sqlite3"
    q = DurableLocalQueue(path)
    q.enqueue(_event("k1"), seen_key="PIN-4821")
    q.enqueue(_event("k1"), seen_key="other")
    q.record_seen("PIN-4821", EventType.CHECK_OUT, datetime(2026, 3, 2, 7, 0))
    q.close()

    reopened = DurableLocalQueue(path)
    day = datetime(2026, 3, 2).date()

    assert reopened.last_seen("PIN-4821", day) == (EventType.CHECK_IN, datetime(2026, 3, 2, 7, 35))
    assert reopened.last_seen("other", day) is None
    assert reopened.forget_seen_before(datetime(2026, 3, 3).date()) == 1
    assert reopened.last_seen("PIN-4821", day) is None
    reopened.close()
