from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import minutes_between
from ..core.enums import AttendanceStatus, EventSource, EventType, RegisterMark, SubjectType, SummaryFlag
from ..events.model import AttendanceEvent
from ..summaries.model import SummaryFlags
from .factory import StatusStrategyFactory
from .model import AttendancePolicy
from .strategies.base import DayWindow

# Register mark expected in the class register for each gate-derived status.
_EXPECTED_MARK = {
    AttendanceStatus.PRESENT: RegisterMark.PRESENT,
    AttendanceStatus.EARLY_PICKUP: RegisterMark.PRESENT,
    AttendanceStatus.UNKNOWN: RegisterMark.PRESENT,
    AttendanceStatus.LATE: RegisterMark.LATE,
    AttendanceStatus.ABSENT: RegisterMark.ABSENT,
}


@dataclass(frozen=True)
class Evaluation:
    status: AttendanceStatus
    flags: SummaryFlags
    earliest_check_in: Optional[datetime] = None
    latest_check_out: Optional[datetime] = None
    late_minutes: int = 0
    early_minutes: int = 0
    overtime_minutes: int = 0
    total_hours_worked: float = 0.0
    note: Optional[str] = None
    counted: tuple[AttendanceEvent, ...] = ()
    ignored: tuple[AttendanceEvent, ...] = ()


def _ordered(events: Iterable[AttendanceEvent]) -> list[AttendanceEvent]:
    return sorted(events, key=lambda e: (e.captured_at_device, e.event_id or 0, e.idempotency_key))


def apply_anti_passback(
    events: Sequence[AttendanceEvent], *, window_minutes: int
) -> tuple[list[AttendanceEvent], list[AttendanceEvent]]:
    """Split ordered gate events into (counted, ignored).

    An event repeating the type of the previous counted event within the window is a
    re-scan of the same physical pass and is ignored.
    """
    window = timedelta(minutes=max(0, window_minutes))
    counted: list[AttendanceEvent] = []
    ignored: list[AttendanceEvent] = []

    for event in events:
        previous = counted[-1] if counted else None
        if (
            previous is not None
            and previous.event_type == event.event_type
            and event.captured_at_device - previous.captured_at_device <= window
        ):
            ignored.append(event)
            continue
        counted.append(event)
    return counted, ignored


class PolicyEngine:
    """Turns one subject's raw events for one date into a status and exception flags."""

    def __init__(self, strategy_factory: StatusStrategyFactory | None = None):
        self._factory = strategy_factory or StatusStrategyFactory()

    @staticmethod
    def window_for(policy: AttendancePolicy, subject_type: SubjectType, work_date: date) -> DayWindow:
        start_t, end_t = policy.window_for(subject_type)
        return DayWindow(
            start=datetime.combine(work_date, start_t),
            end=datetime.combine(work_date, end_t),
            grace_minutes=policy.grace_minutes,
            late_threshold_minutes=policy.late_threshold_minutes,
        )

    def evaluate(
        self,
        *,
        policy: AttendancePolicy,
        subject_type: SubjectType,
        work_date: date,
        events: Iterable[AttendanceEvent],
        now: datetime | None = None,
    ) -> Evaluation:
        now = now or datetime.now()
        day_events = [e for e in _ordered(events) if e.work_date == work_date]
        gate_events = [e for e in day_events if e.source != EventSource.MANUAL_REGISTER]
        register_events = [e for e in day_events if e.source == EventSource.MANUAL_REGISTER]

        counted, ignored = apply_anti_passback(gate_events, window_minutes=policy.anti_passback_minutes)
        window = self.window_for(policy, subject_type, work_date)

        check_ins = [e.captured_at_device for e in counted if e.event_type == EventType.CHECK_IN]
        check_outs = [e.captured_at_device for e in counted if e.event_type == EventType.CHECK_OUT]
        earliest_in = min(check_ins) if check_ins else None

        # The day is closed only when the last counted transition is a checkout.
        day_open = bool(counted) and counted[-1].event_type == EventType.CHECK_IN
        latest_out = max(check_outs) if check_outs and not day_open else None

        strategy = self._factory.for_day(check_in=earliest_in, check_out=latest_out, window=window)
        decision = strategy.decide(check_in=earliest_in, check_out=latest_out, window=window)

        late_minutes = max(0, minutes_between(window.on_time_until, earliest_in)) if earliest_in else 0
        early_minutes = 0
        overtime_minutes = 0
        total_hours = 0.0
        if latest_out is not None:
            early_minutes = max(0, minutes_between(latest_out, window.end))
            overtime_minutes = max(0, minutes_between(window.end, latest_out) - policy.overtime_grace_minutes)
            if earliest_in is not None:
                total_hours = round((latest_out - earliest_in).total_seconds() / 3600, 2)

        flags: set[SummaryFlag] = set()
        if day_open:
            open_since = counted[-1].captured_at_device
            if now >= open_since + timedelta(minutes=policy.missing_checkout_cutoff_minutes):
                flags.add(SummaryFlag.MISSING_CHECKOUT)
        if self._outside_policy(policy, window, work_date, counted, earliest_in, latest_out):
            flags.add(SummaryFlag.OUTSIDE_POLICY)
        if self._register_conflict(register_events, decision.status):
            flags.add(SummaryFlag.REGISTER_CONFLICT)

        return Evaluation(
            status=decision.status,
            note=decision.note,
            flags=SummaryFlags.from_iterable(flags),
            earliest_check_in=earliest_in,
            latest_check_out=latest_out,
            late_minutes=late_minutes,
            early_minutes=early_minutes,
            overtime_minutes=overtime_minutes,
            total_hours_worked=total_hours,
            counted=tuple(counted),
            ignored=tuple(ignored),
        )

    @staticmethod
    def _outside_policy(
        policy: AttendancePolicy,
        window: DayWindow,
        work_date: date,
        counted: Sequence[AttendanceEvent],
        earliest_in: Optional[datetime],
        latest_out: Optional[datetime],
    ) -> bool:
        if not counted:
            return False
        if not policy.is_working_day(work_date):
            return True
        if earliest_in is not None:
            cutoff = window.late_cutoff
            if earliest_in >= window.end or (cutoff is not None and earliest_in > cutoff):
                return True
        if latest_out is not None and latest_out > window.end + timedelta(minutes=policy.overtime_grace_minutes):
            return True
        return False

    @staticmethod
    def _register_conflict(register_events: Sequence[AttendanceEvent], gate_status: AttendanceStatus) -> bool:
        marks = [e.register_mark for e in register_events if e.register_mark is not None]
        if not marks:
            return False
        # The most recent register entry is the final word for the day.
        return marks[-1] != _EXPECTED_MARK[gate_status]
