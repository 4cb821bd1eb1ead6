from __future__ import annotations

from datetime import date, datetime, timedelta

from src.attendance_sync.attendance_sync.core.enums import AttendanceStatus, EventSource, EventType, SubjectType
from src.attendance_sync.attendance_sync.events.model import AttendanceEvent

from tests.fakes import learner, make_container, staff

DAY = date(2026, 3, 2)


def _record(c, key, user_id, hh, mm, event_type=EventType.CHECK_IN, subject_type=SubjectType.LEARNER):
    event = AttendanceEvent(
        idempotency_key=key,
        tenant_id="t1",
        branch_id="b1",
        subject_type=subject_type,
        subject_user_id=user_id,
        event_type=event_type,
        source=EventSource.KIOSK_SCAN,
        captured_at_device=datetime(2026, 3, 2, hh, mm),
    )
    stored = c.event_service.record(event, now=datetime(2026, 3, 2, hh, mm)).event
    return c.summary_service.recompute_for_event(stored, now=datetime(2026, 3, 2, hh, mm))


def test_recompute_upserts_one_summary_per_subject_day():
    c = make_container([learner("L1")])

    first = _record(c, "k1", "L1", 7, 45)
    second = _record(c, "k2", "L1", 14, 5, EventType.CHECK_OUT)

    assert first.summary_id == second.summary_id
    assert second.status == AttendanceStatus.LATE
    assert second.latest_check_out == datetime(2026, 3, 2, 14, 5)
    assert len(c.summaries_repo.rows) == 1


def test_rollup_marks_learners_without_events_absent():
    c = make_container([learner("L1"), learner("L2"), staff("S1")])
    _record(c, "k1", "L1", 7, 35)

    summaries = c.summary_service.rollup(tenant_id="t1", branch_id="b1", work_date=DAY, now=datetime(2026, 3, 2, 18, 0))

    by_user = {s.subject_user_id: s for s in summaries}
    assert by_user["L1"].status == AttendanceStatus.PRESENT
    assert by_user["L2"].status == AttendanceStatus.ABSENT
    assert by_user["S1"].status == AttendanceStatus.ABSENT
    assert by_user["L1"].is_exception  # still inside at 18:00: missing checkout


def test_learner_branch_view_counts_statuses():
    c = make_container([learner("L1"), learner("L2")])
    _record(c, "k1", "L1", 7, 35)

    view = c.summary_service.learner_branch_view(tenant_id="t1", branch_id="b1", work_date=DAY)

    assert view["totals"] == {"PRESENT": 1, "NOT_RECORDED": 1}
    rows = {r["learner_id"]: r for r in view["learners"]}
    assert rows["L1"]["earliest_check_in"] == "2026-03-02T07:35:00"
    assert rows["L2"]["status"] is None


def test_staff_today_reports_open_shift():
    c = make_container([staff("S1")])
    _record(c, "k1", "S1", 7, 5, subject_type=SubjectType.STAFF)

    view = c.summary_service.staff_today(tenant_id="t1", branch_id="b1", now=datetime(2026, 3, 2, 10, 0))

    row = view["staff"][0]
    assert row["checked_in"] is True
    assert row["status"] == "PRESENT"
    assert row["check_out_time"] is None


def test_rollup_skips_a_failing_subject_and_grades_the_rest(monkeypatch):
    c = make_container([learner("L1"), learner("L2"), learner("L3")])
    original = c.events_repo.list_for_subject_day

    def flaky(*, tenant_id, subject_user_id, work_date):
        if subject_user_id == "L2":
            raise RuntimeError("corrupt row")
        return original(tenant_id=tenant_id, subject_user_id=subject_user_id, work_date=work_date)

    monkeypatch.setattr(c.events_repo, "list_for_subject_day", flaky)

    summaries = c.summary_service.rollup(tenant_id="t1", branch_id="b1", work_date=DAY, now=datetime(2026, 3, 2, 18, 0))

    assert [s.subject_user_id for s in summaries] == ["L1", "L3"]


def test_weekly_rollup_totals_daily_summaries():
    c = make_container([learner("L1"), learner("L2")])
    tuesday = DAY + timedelta(days=1)
    scans = [
        ("w1", DAY, 7, 35, EventType.CHECK_IN),
        ("w2", DAY, 14, 5, EventType.CHECK_OUT),
        ("w3", tuesday, 7, 45, EventType.CHECK_IN),
    ]
    for key, day, hh, mm, event_type in scans:
        at = datetime.combine(day, datetime.min.time()).replace(hour=hh, minute=mm)
        c.event_service.record(
            AttendanceEvent(
                idempotency_key=key,
                tenant_id="t1",
                branch_id="b1",
                subject_type=SubjectType.LEARNER,
                subject_user_id="L1",
                event_type=event_type,
                source=EventSource.KIOSK_SCAN,
                captured_at_device=at,
            ),
            now=at,
        )
    for offset in (0, 1, 2, 7):
        day = DAY + timedelta(days=offset)
        c.summary_service.rollup(
            tenant_id="t1", branch_id="b1", work_date=day, now=datetime.combine(day, datetime.min.time()).replace(hour=18)
        )

    weekly = c.summary_service.weekly_rollup(tenant_id="t1", branch_id="b1", week_of=DAY + timedelta(days=2))

    by_user = {w.subject_user_id: w for w in weekly}
    l1 = by_user["L1"]
    assert (l1.week_start, l1.week_end) == (DAY, DAY + timedelta(days=6))
    assert (l1.days_recorded, l1.days_present, l1.days_absent, l1.days_late) == (3, 2, 1, 1)
    assert l1.total_late_minutes == 5
    assert l1.missing_checkouts == 1
    assert (by_user["L2"].days_absent, by_user["L2"].days_present) == (3, 0)
