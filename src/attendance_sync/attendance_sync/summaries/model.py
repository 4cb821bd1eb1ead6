from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from ..core.enums import AttendanceStatus, SubjectType, SummaryFlag

EXCEPTION_FLAGS = frozenset({SummaryFlag.MISSING_CHECKOUT, SummaryFlag.OUTSIDE_POLICY, SummaryFlag.REGISTER_CONFLICT})


@dataclass(frozen=True)
class SummaryFlags:
    """Small immutable flag set; ``ordered()`` follows display precedence."""

    members: frozenset[SummaryFlag] = field(default_factory=frozenset)

    @classmethod
    def from_iterable(cls, flags: Iterable[SummaryFlag]) -> "SummaryFlags":
        return cls(frozenset(flags))

    def __contains__(self, flag: object) -> bool:
        return flag in self.members

    def __bool__(self) -> bool:
        return bool(self.members)

    def with_flag(self, flag: SummaryFlag) -> "SummaryFlags":
        return SummaryFlags(self.members | {flag})

    def ordered(self) -> list[SummaryFlag]:
        return sorted(self.members, key=lambda f: f.precedence)

    def primary(self) -> Optional[SummaryFlag]:
        ordered = self.ordered()
        return ordered[0] if ordered else None

    @property
    def overridden(self) -> bool:
        return SummaryFlag.OVERRIDDEN in self.members

    @property
    def has_exception(self) -> bool:
        return bool(self.members & EXCEPTION_FLAGS)

    def to_dict(self) -> dict[str, bool]:
        return {flag.value: flag in self.members for flag in SummaryFlag}


@dataclass(frozen=True)
class AttendanceSummary:
    """Derived daily attendance of one subject. ``status`` is authoritative for reporting."""

    tenant_id: str
    branch_id: str
    subject_type: SubjectType
    subject_user_id: str
    work_date: date
    status: AttendanceStatus
    computed_status: AttendanceStatus
    computed_at: datetime
    earliest_check_in: Optional[datetime] = None
    latest_check_out: Optional[datetime] = None
    late_minutes: int = 0
    early_minutes: int = 0
    overtime_minutes: int = 0
    total_hours_worked: float = 0.0
    flags: SummaryFlags = field(default_factory=SummaryFlags)
    override_reason: Optional[str] = None
    overridden_by: Optional[str] = None
    overridden_at: Optional[datetime] = None
    summary_id: Optional[int] = None

    @property
    def is_exception(self) -> bool:
        """At least one anomaly flag and not yet resolved by a human."""
        return self.flags.has_exception and not self.flags.overridden

    def to_dict(self) -> dict:
        primary = self.flags.primary()
        return {
            "id": self.summary_id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "subject_type": self.subject_type.value,
            "subject_user_id": self.subject_user_id,
            "date": self.work_date.isoformat(),
            "status": self.status.value,
            "computed_status": self.computed_status.value,
            "earliest_check_in": self.earliest_check_in.isoformat() if self.earliest_check_in else None,
            "latest_check_out": self.latest_check_out.isoformat() if self.latest_check_out else None,
            "late_minutes": self.late_minutes,
            "early_minutes": self.early_minutes,
            "overtime_minutes": self.overtime_minutes,
            "total_hours_worked": self.total_hours_worked,
            "flags": self.flags.to_dict(),
            "primary_flag": primary.value if primary else None,
            "override_reason": self.override_reason,
            "overridden_by": self.overridden_by,
            "overridden_at": self.overridden_at.isoformat() if self.overridden_at else None,
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class WeeklySummary:
    """Totals of one subject's daily summaries over a Monday-to-Sunday week."""

    tenant_id: str
    branch_id: str
    subject_type: SubjectType
    subject_user_id: str
    week_start: date
    week_end: date
    days_recorded: int = 0
    days_present: int = 0
    days_absent: int = 0
    days_late: int = 0
    days_early_pickup: int = 0
    total_late_minutes: int = 0
    total_early_minutes: int = 0
    total_overtime_minutes: int = 0
    total_hours_worked: float = 0.0
    missing_checkouts: int = 0
    overrides: int = 0

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "subject_type": self.subject_type.value,
            "subject_user_id": self.subject_user_id,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "days_recorded": self.days_recorded,
            "days_present": self.days_present,
            "days_absent": self.days_absent,
            "days_late": self.days_late,
            "days_early_pickup": self.days_early_pickup,
            "total_late_minutes": self.total_late_minutes,
            "total_early_minutes": self.total_early_minutes,
            "total_overtime_minutes": self.total_overtime_minutes,
            "total_hours_worked": self.total_hours_worked,
            "missing_checkouts": self.missing_checkouts,
            "overrides": self.overrides,
        }
