from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time
from itertools import count

from src.attendance_sync.attendance_sync.core.enums import (
    AttendanceStatus,
    EventSource,
    EventType,
    RegisterMark,
    SubjectType,
    SummaryFlag,
)
from src.attendance_sync.attendance_sync.events.model import AttendanceEvent
from src.attendance_sync.attendance_sync.policies.engine import PolicyEngine, apply_anti_passback
from src.attendance_sync.attendance_sync.policies.model import AttendancePolicy
from src.attendance_sync.attendance_sync.summaries.model import SummaryFlags

MONDAY = date(2026, 3, 2)
SATURDAY = date(2026, 3, 7)
POLICY = AttendancePolicy.default(tenant_id="t1", branch_id="b1")

_keys = count(1)


def _ev(hh: int, mm: int, event_type=EventType.CHECK_IN, *, day: date = MONDAY, source=EventSource.KIOSK_SCAN, mark=None):
    n = next(_keys)
    return AttendanceEvent(
        idempotency_key=f"k{n}",
        tenant_id="t1",
        branch_id="b1",
        subject_type=SubjectType.LEARNER,
        subject_user_id="L1",
        event_type=event_type,
        source=source,
        captured_at_device=datetime.combine(day, time(hh, mm)),
        register_mark=mark,
        event_id=n,
    )


def _evaluate(events, *, policy=POLICY, day=MONDAY, now=None, subject_type=SubjectType.LEARNER):
    return PolicyEngine().evaluate(
        policy=policy,
        subject_type=subject_type,
        work_date=day,
        events=events,
        now=now or datetime.combine(day, time(15, 0)),
    )


def test_on_time_day_is_present_without_flags():
    result = _evaluate([_ev(7, 35), _ev(14, 5, EventType.CHECK_OUT)])

    assert result.status == AttendanceStatus.PRESENT
    assert not result.flags
    assert result.earliest_check_in == datetime(2026, 3, 2, 7, 35)
    assert result.latest_check_out == datetime(2026, 3, 2, 14, 5)
    assert result.total_hours_worked == 6.5


def test_check_in_after_grace_is_late_with_minutes():
    result = _evaluate([_ev(7, 42)], now=datetime(2026, 3, 2, 9, 0))

    assert result.status == AttendanceStatus.LATE
    assert result.late_minutes == 2
    assert result.note == "2 min late"


def test_repeat_scan_within_anti_passback_is_ignored():
    first, repeat = _ev(7, 35), _ev(7, 38)

    result = _evaluate([first, repeat, _ev(14, 5, EventType.CHECK_OUT)])

    assert [e.idempotency_key for e in result.ignored] == [repeat.idempotency_key]
    assert result.earliest_check_in == first.captured_at_device
    assert result.status == AttendanceStatus.PRESENT


def test_anti_passback_keeps_alternating_events():
    events = [_ev(7, 35), _ev(7, 37, EventType.CHECK_OUT), _ev(7, 39)]

    counted, ignored = apply_anti_passback(events, window_minutes=5)

    assert counted == events
    assert ignored == []


def test_missing_checkout_after_cutoff():
    events = [_ev(7, 35)]

    early = _evaluate(events, now=datetime(2026, 3, 2, 10, 0))
    late = _evaluate(events, now=datetime(2026, 3, 2, 15, 35))

    assert SummaryFlag.MISSING_CHECKOUT not in early.flags
    assert SummaryFlag.MISSING_CHECKOUT in late.flags
    assert late.status == AttendanceStatus.PRESENT
    assert late.latest_check_out is None


def test_reentry_reopens_the_day():
    result = _evaluate([_ev(7, 35), _ev(12, 0, EventType.CHECK_OUT), _ev(12, 30)])

    assert result.latest_check_out is None
    assert result.status == AttendanceStatus.PRESENT


def test_no_events_is_absent():
    result = _evaluate([])

    assert result.status == AttendanceStatus.ABSENT
    assert not result.flags


def test_checkout_only_is_unknown():
    result = _evaluate([_ev(14, 5, EventType.CHECK_OUT)])

    assert result.status == AttendanceStatus.UNKNOWN
    assert result.earliest_check_in is None


def test_leaving_before_end_minus_grace_is_early_pickup():
    result = _evaluate([_ev(7, 50), _ev(11, 0, EventType.CHECK_OUT)])

    assert result.status == AttendanceStatus.EARLY_PICKUP
    assert result.early_minutes == 180
    assert result.late_minutes == 10


def test_attendance_on_non_working_day_is_outside_policy():
    result = _evaluate([_ev(8, 0, day=SATURDAY), _ev(12, 0, EventType.CHECK_OUT, day=SATURDAY)], day=SATURDAY)

    assert SummaryFlag.OUTSIDE_POLICY in result.flags


def test_arrival_after_late_cutoff_is_outside_policy():
    policy = replace(POLICY, late_threshold_minutes=30)

    within = _evaluate([_ev(8, 5)], policy=policy, now=datetime(2026, 3, 2, 9, 0))
    beyond = _evaluate([_ev(8, 20)], policy=policy, now=datetime(2026, 3, 2, 9, 0))

    assert within.status == AttendanceStatus.LATE
    assert SummaryFlag.OUTSIDE_POLICY not in within.flags
    assert beyond.status == AttendanceStatus.LATE
    assert SummaryFlag.OUTSIDE_POLICY in beyond.flags


def test_staff_overtime_beyond_grace():
    result = _evaluate(
        [_ev(6, 55), _ev(16, 0, EventType.CHECK_OUT)],
        subject_type=SubjectType.STAFF,
        now=datetime(2026, 3, 2, 17, 0),
    )

    assert result.status == AttendanceStatus.PRESENT
    assert result.overtime_minutes == 15
    assert SummaryFlag.OUTSIDE_POLICY in result.flags


def test_register_mark_disagreeing_with_gate_is_a_conflict():
    absent_mark = _ev(8, 0, source=EventSource.MANUAL_REGISTER, mark=RegisterMark.ABSENT)
    result = _evaluate([_ev(7, 35), absent_mark, _ev(14, 5, EventType.CHECK_OUT)])

    assert result.status == AttendanceStatus.PRESENT
    assert SummaryFlag.REGISTER_CONFLICT in result.flags


def test_latest_register_mark_wins():
    marks = [
        _ev(8, 0, source=EventSource.MANUAL_REGISTER, mark=RegisterMark.ABSENT),
        _ev(8, 30, source=EventSource.MANUAL_REGISTER, mark=RegisterMark.LATE),
    ]
    result = _evaluate([_ev(7, 45), *marks], now=datetime(2026, 3, 2, 9, 0))

    assert result.status == AttendanceStatus.LATE
    assert SummaryFlag.REGISTER_CONFLICT not in result.flags


def test_flag_precedence():
    flags = SummaryFlags.from_iterable(
        [SummaryFlag.OUTSIDE_POLICY, SummaryFlag.MISSING_CHECKOUT, SummaryFlag.REGISTER_CONFLICT]
    )

    assert flags.primary() == SummaryFlag.REGISTER_CONFLICT
    assert flags.ordered()[-1] == SummaryFlag.OUTSIDE_POLICY
    assert flags.with_flag(SummaryFlag.OVERRIDDEN).primary() == SummaryFlag.OVERRIDDEN
