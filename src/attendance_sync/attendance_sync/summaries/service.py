from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from ..common.logging import get_logger
from ..core.enums import AttendanceStatus, SubjectType, SummaryFlag
from ..events.model import AttendanceEvent
from ..events.repository import EventRepository
from ..policies.engine import PolicyEngine
from ..policies.service import PolicyService
from ..subjects.model import Subject
from ..subjects.repository import SubjectRepository
from .model import AttendanceSummary, WeeklySummary
from .repository import SummaryRepository

logger = get_logger(__name__)


class SummaryService:
    """Keeps AttendanceSummary rows in step with the raw event stream."""

    def __init__(
        self,
        events: EventRepository,
        summaries: SummaryRepository,
        policies: PolicyService,
        subjects: SubjectRepository,
        *,
        engine: PolicyEngine | None = None,
    ):
        self._events = events
        self._summaries = summaries
        self._policies = policies
        self._subjects = subjects
        self._engine = engine or PolicyEngine()

    def recompute(
        self,
        *,
        tenant_id: str,
        branch_id: str,
        subject_type: SubjectType,
        subject_user_id: str,
        work_date: date,
        now: datetime | None = None,
    ) -> AttendanceSummary:
        now = now or datetime.now()
        policy = self._policies.get_effective(tenant_id=tenant_id, branch_id=branch_id)
        events = self._events.list_for_subject_day(
            tenant_id=tenant_id, subject_user_id=subject_user_id, work_date=work_date
        )
        events = self._with_overrides(tenant_id, events)
        result = self._engine.evaluate(
            policy=policy, subject_type=subject_type, work_date=work_date, events=events, now=now
        )
        if result.ignored:
            logger.info(
                "anti-passback: %d repeat scan(s) ignored for %s on %s",
                len(result.ignored),
                subject_user_id,
                work_date.isoformat(),
            )

        summary = AttendanceSummary(
            tenant_id=tenant_id,
            branch_id=branch_id,
            subject_type=subject_type,
            subject_user_id=subject_user_id,
            work_date=work_date,
            status=result.status,
            computed_status=result.status,
            computed_at=now,
            earliest_check_in=result.earliest_check_in,
            latest_check_out=result.latest_check_out,
            late_minutes=result.late_minutes,
            early_minutes=result.early_minutes,
            overtime_minutes=result.overtime_minutes,
            total_hours_worked=result.total_hours_worked,
            flags=result.flags,
        )
        return self._summaries.save_computed(summary)

    def recompute_for_event(self, event: AttendanceEvent, *, now: datetime | None = None) -> AttendanceSummary:
        return self.recompute(
            tenant_id=event.tenant_id,
            branch_id=event.branch_id,
            subject_type=event.subject_type,
            subject_user_id=str(event.subject_user_id),
            work_date=event.work_date,
            now=now,
        )

    def _with_overrides(self, tenant_id: str, events: Sequence[AttendanceEvent]) -> list[AttendanceEvent]:
        """Grade with the newest overridden direction of each event; stored rows stay as captured."""
        overrides = self._events.latest_overrides(
            tenant_id=tenant_id, event_ids=[e.event_id for e in events if e.event_id is not None]
        )
        return [
            replace(e, event_type=overrides[e.event_id].new_event_type) if e.event_id in overrides else e
            for e in events
        ]

    def rollup(self, *, tenant_id: str, branch_id: str, work_date: date, now: datetime | None = None) -> list[AttendanceSummary]:
        """Recompute every subject of a branch for a date; subjects without events become ABSENT."""
        now = now or datetime.now()
        targets: dict[str, SubjectType] = {
            s.user_id: s.subject_type for s in self._subjects.list_for_branch(tenant_id=tenant_id, branch_id=branch_id)
        }
        for subject_type, user_id in self._events.list_subjects_for_branch_day(
            tenant_id=tenant_id, branch_id=branch_id, work_date=work_date
        ):
            targets.setdefault(user_id, SubjectType(subject_type))

        summaries: list[AttendanceSummary] = []
        failed = 0
        for user_id, subject_type in sorted(targets.items()):
            try:
                summaries.append(
                    self.recompute(
                        tenant_id=tenant_id,
                        branch_id=branch_id,
                        subject_type=subject_type,
                        subject_user_id=user_id,
                        work_date=work_date,
                        now=now,
                    )
                )
            except Exception:
                # A failing subject is logged and skipped; the rest of the branch is still graded.
                failed += 1
                logger.exception("rollup failed for %s on %s", user_id, work_date.isoformat())

        flagged = sum(1 for s in summaries if s.is_exception)
        logger.info(
            "rollup %s/%s %s: %d summaries, %d exceptions, %d failed",
            tenant_id,
            branch_id,
            work_date.isoformat(),
            len(summaries),
            flagged,
            failed,
        )
        return summaries

    def weekly_rollup(self, *, tenant_id: str, branch_id: str, week_of: date) -> list[WeeklySummary]:
        """Per-subject totals of the daily summaries in the Monday-to-Sunday week containing ``week_of``.

        Reads the stored daily rows (overrides included), so run the daily rollup first
        for days nobody scanned on.
        """
        week_start = week_of - timedelta(days=week_of.weekday())
        week_end = week_start + timedelta(days=6)
        rows = self._summaries.list_for_branch_range(
            tenant_id=tenant_id, branch_id=branch_id, start=week_start, end=week_end
        )

        by_subject: dict[str, list[AttendanceSummary]] = {}
        for s in rows:
            by_subject.setdefault(s.subject_user_id, []).append(s)

        weekly = [
            self._weekly_totals(days, week_start=week_start, week_end=week_end)
            for _, days in sorted(by_subject.items())
        ]
        logger.info(
            "weekly rollup %s/%s %s: %d subjects", tenant_id, branch_id, week_start.isoformat(), len(weekly)
        )
        return weekly

    @staticmethod
    def _weekly_totals(days: list[AttendanceSummary], *, week_start: date, week_end: date) -> WeeklySummary:
        statuses = Counter(s.status for s in days)
        first = days[0]
        return WeeklySummary(
            tenant_id=first.tenant_id,
            branch_id=first.branch_id,
            subject_type=first.subject_type,
            subject_user_id=first.subject_user_id,
            week_start=week_start,
            week_end=week_end,
            days_recorded=len(days),
            days_present=statuses[AttendanceStatus.PRESENT]
            + statuses[AttendanceStatus.LATE]
            + statuses[AttendanceStatus.EARLY_PICKUP],
            days_absent=statuses[AttendanceStatus.ABSENT],
            days_late=statuses[AttendanceStatus.LATE],
            days_early_pickup=statuses[AttendanceStatus.EARLY_PICKUP],
            total_late_minutes=sum(s.late_minutes for s in days),
            total_early_minutes=sum(s.early_minutes for s in days),
            total_overtime_minutes=sum(s.overtime_minutes for s in days),
            total_hours_worked=round(sum(s.total_hours_worked for s in days), 2),
            missing_checkouts=sum(1 for s in days if SummaryFlag.MISSING_CHECKOUT in s.flags),
            overrides=sum(1 for s in days if s.flags.overridden),
        )

    def recompute_existing(
        self, *, tenant_id: str, branch_id: str, work_date: date, now: datetime | None = None
    ) -> list[AttendanceSummary]:
        """Re-grade summaries already computed for the date (used after a policy change)."""
        existing = self._summaries.list_for_branch_day(tenant_id=tenant_id, branch_id=branch_id, work_date=work_date)
        return [
            self.recompute(
                tenant_id=tenant_id,
                branch_id=branch_id,
                subject_type=s.subject_type,
                subject_user_id=s.subject_user_id,
                work_date=work_date,
                now=now,
            )
            for s in existing
        ]

    def get(self, *, tenant_id: str, subject_user_id: str, work_date: date) -> Optional[AttendanceSummary]:
        return self._summaries.get(tenant_id=tenant_id, subject_user_id=subject_user_id, work_date=work_date)

    # Read models -------------------------------------------------------------------------------

    def _by_subject(self, *, tenant_id: str, branch_id: str, work_date: date, subject_type: SubjectType) -> dict:
        rows = self._summaries.list_for_branch_day(
            tenant_id=tenant_id, branch_id=branch_id, work_date=work_date, subject_type=subject_type
        )
        return {s.subject_user_id: s for s in rows}

    def learner_branch_view(self, *, tenant_id: str, branch_id: str, work_date: date) -> dict:
        learners = self._subjects.list_for_branch(
            tenant_id=tenant_id, branch_id=branch_id, subject_type=SubjectType.LEARNER
        )
        summaries = self._by_subject(
            tenant_id=tenant_id, branch_id=branch_id, work_date=work_date, subject_type=SubjectType.LEARNER
        )

        rows = [self._learner_row(learner, summaries.get(learner.user_id)) for learner in learners]
        totals = Counter(row["status"] or "NOT_RECORDED" for row in rows)
        return {
            "branch_id": branch_id,
            "date": work_date.isoformat(),
            "totals": dict(totals),
            "learners": rows,
        }

    @staticmethod
    def _learner_row(learner: Subject, summary: Optional[AttendanceSummary]) -> dict:
        row = {
            "learner_id": learner.user_id,
            "learner_name": learner.display_name,
            "grade": learner.grade,
            "class_name": learner.class_name,
            "status": None,
            "earliest_check_in": None,
            "latest_check_out": None,
            "late_minutes": 0,
            "flags": None,
        }
        if summary:
            data = summary.to_dict()
            row.update(
                summary_id=summary.summary_id,
                status=data["status"],
                earliest_check_in=data["earliest_check_in"],
                latest_check_out=data["latest_check_out"],
                late_minutes=summary.late_minutes,
                flags=data["flags"],
            )
        return row

    def staff_today(self, *, tenant_id: str, branch_id: str, now: datetime | None = None) -> dict:
        now = now or datetime.now()
        today = now.date()
        staff = self._subjects.list_for_branch(tenant_id=tenant_id, branch_id=branch_id, subject_type=SubjectType.STAFF)
        summaries = self._by_subject(
            tenant_id=tenant_id, branch_id=branch_id, work_date=today, subject_type=SubjectType.STAFF
        )

        rows = []
        for member in staff:
            s = summaries.get(member.user_id)
            rows.append(
                {
                    "user_id": member.user_id,
                    "name": member.display_name,
                    "status": s.status.value if s else None,
                    "checked_in": bool(s and s.earliest_check_in and not s.latest_check_out),
                    "check_in_time": s.earliest_check_in.isoformat() if s and s.earliest_check_in else None,
                    "check_out_time": s.latest_check_out.isoformat() if s and s.latest_check_out else None,
                    "late_minutes": s.late_minutes if s else 0,
                    "early_minutes": s.early_minutes if s else 0,
                    "overtime_minutes": s.overtime_minutes if s else 0,
                    "hours_worked": s.total_hours_worked if s else 0.0,
                    "flags": s.flags.to_dict() if s else None,
                }
            )
        return {"branch_id": branch_id, "date": today.isoformat(), "staff": rows}
