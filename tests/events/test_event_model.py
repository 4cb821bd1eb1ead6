from __future__ import annotations

from datetime import date, datetime

import pytest

from src.attendance_sync.attendance_sync.core.enums import EventSource, EventType, RegisterMark, SubjectType
from src.attendance_sync.attendance_sync.core.exceptions import ValidationError
from src.attendance_sync.attendance_sync.events.model import AttendanceEvent


def _payload(**overrides):
    data = {
        "idempotency_key": "gate-1-abc",
        "tenant_id": "t1",
        "branch_id": "b1",
        "subject_type": "LEARNER",
        "subject_user_id": "L1",
        "event_type": "CHECK_IN",
        "source": "KIOSK_SCAN",
        "captured_at_device": "2026-03-02T07:42:00",
    }
    data.update(overrides)
    return data


def test_from_dict_parses_enums_and_work_date():
    event = AttendanceEvent.from_dict(_payload())

    assert event.subject_type == SubjectType.LEARNER
    assert event.event_type == EventType.CHECK_IN
    assert event.source == EventSource.KIOSK_SCAN
    assert event.captured_at_device == datetime(2026, 3, 2, 7, 42)
    assert event.work_date == date(2026, 3, 2)


def test_to_dict_omits_unset_optionals_and_round_trips():
    event = AttendanceEvent.from_dict(_payload(device_id="7"))
    data = event.to_dict()

    assert "captured_lat" not in data
    assert data["device_id"] == "7"
    assert AttendanceEvent.from_dict(data) == event


def test_subject_or_token_required():
    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(subject_user_id=None))

    event = AttendanceEvent.from_dict(_payload(subject_user_id=None, qr_token="PIN-1234"))
    assert event.subject_user_id is None


def test_geo_event_requires_fix_in_range():
    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(source="PWA_GEO"))

    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(source="PWA_GEO", captured_lat=91, captured_lng=10))

    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(captured_lat=10.5))

    event = AttendanceEvent.from_dict(_payload(source="PWA_GEO", captured_lat=10.5, captured_lng=106.7))
    assert event.captured_lng == 106.7


def test_register_mark_only_on_manual_register():
    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(register_mark="ABSENT"))

    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(source="MANUAL_REGISTER"))

    event = AttendanceEvent.from_dict(_payload(source="MANUAL_REGISTER", register_mark="absent"))
    assert event.register_mark == RegisterMark.ABSENT
    assert event.is_register_mark


def test_rejects_unknown_enum_and_bad_timestamp():
    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(event_type="ENTER"))

    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(captured_at_device="yesterday"))


def test_rejects_overlong_key():
    with pytest.raises(ValidationError):
        AttendanceEvent.from_dict(_payload(idempotency_key="k" * 129))
