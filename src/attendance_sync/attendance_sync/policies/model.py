from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Mapping, Optional

from ..common.datetime_utils import parse_hhmm
from ..common.validators import optional_str, require_non_empty, require_non_negative_int
from ..core import constants
from ..core.enums import SubjectType
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class AttendancePolicy:
    """Working-day rules of a branch (or of the whole tenant when branch_id is None)."""

    tenant_id: str
    branch_id: Optional[str]
    working_days: tuple[str, ...] = constants.DEFAULT_WORKING_DAYS
    school_start_time: time = constants.DEFAULT_SCHOOL_START
    school_end_time: time = constants.DEFAULT_SCHOOL_END
    staff_shift_start: time = constants.DEFAULT_STAFF_SHIFT_START
    staff_shift_end: time = constants.DEFAULT_STAFF_SHIFT_END
    grace_minutes: int = constants.DEFAULT_GRACE_MINUTES
    overtime_grace_minutes: int = constants.DEFAULT_OVERTIME_GRACE_MINUTES
    late_threshold_minutes: int = constants.DEFAULT_LATE_THRESHOLD_MINUTES
    missing_checkout_cutoff_minutes: int = constants.DEFAULT_MISSING_CHECKOUT_CUTOFF_MINUTES
    anti_passback_minutes: int = constants.DEFAULT_ANTI_PASSBACK_MINUTES
    policy_id: Optional[int] = None
    is_active: bool = True
    updated_at: Optional[datetime] = None

    @classmethod
    def default(cls, *, tenant_id: str, branch_id: Optional[str] = None) -> "AttendancePolicy":
        return cls(tenant_id=tenant_id, branch_id=branch_id)

    @property
    def is_default(self) -> bool:
        return self.policy_id is None

    def window_for(self, subject_type: SubjectType) -> tuple[time, time]:
        """(start, end) of the working day that applies to a subject type."""
        if subject_type == SubjectType.STAFF:
            return self.staff_shift_start, self.staff_shift_end
        return self.school_start_time, self.school_end_time

    def is_working_day(self, day: date) -> bool:
        return constants.WEEKDAY_CODES[day.weekday()] in self.working_days

    def to_dict(self) -> dict:
        return {
            "policy_id": self.policy_id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "working_days": list(self.working_days),
            "school_start_time": self.school_start_time.strftime("%H:%M"),
            "school_end_time": self.school_end_time.strftime("%H:%M"),
            "staff_shift_start": self.staff_shift_start.strftime("%H:%M"),
            "staff_shift_end": self.staff_shift_end.strftime("%H:%M"),
            "grace_minutes": self.grace_minutes,
            "overtime_grace_minutes": self.overtime_grace_minutes,
            "late_threshold_minutes": self.late_threshold_minutes,
            "missing_checkout_cutoff_minutes": self.missing_checkout_cutoff_minutes,
            "anti_passback_minutes": self.anti_passback_minutes,
            "is_active": self.is_active,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, tenant_id: str) -> "AttendancePolicy":
        """Build a policy from an admin payload; missing fields fall back to defaults."""
        base = cls.default(tenant_id=tenant_id)

        days_raw = data.get("working_days", list(base.working_days))
        if not isinstance(days_raw, (list, tuple)) or not days_raw:
            raise ValidationError("working_days must be a non-empty list")
        days = tuple(dict.fromkeys(require_non_empty(d, "working_days").upper() for d in days_raw))
        unknown = [d for d in days if d not in constants.WEEKDAY_CODES]
        if unknown:
            raise ValidationError(f"Unknown working days: {', '.join(unknown)}")

        def _time(field: str, fallback: time) -> time:
            value = data.get(field)
            return parse_hhmm(value) if value else fallback

        def _minutes(field: str, fallback: int) -> int:
            value = data.get(field)
            return require_non_negative_int(value, field) if value is not None else fallback

        policy = cls(
            tenant_id=tenant_id,
            branch_id=optional_str(data.get("branch_id")),
            working_days=days,
            school_start_time=_time("school_start_time", base.school_start_time),
            school_end_time=_time("school_end_time", base.school_end_time),
            staff_shift_start=_time("staff_shift_start", base.staff_shift_start),
            staff_shift_end=_time("staff_shift_end", base.staff_shift_end),
            grace_minutes=_minutes("grace_minutes", base.grace_minutes),
            overtime_grace_minutes=_minutes("overtime_grace_minutes", base.overtime_grace_minutes),
            late_threshold_minutes=_minutes("late_threshold_minutes", base.late_threshold_minutes),
            missing_checkout_cutoff_minutes=_minutes(
                "missing_checkout_cutoff_minutes", base.missing_checkout_cutoff_minutes
            ),
            anti_passback_minutes=_minutes("anti_passback_minutes", base.anti_passback_minutes),
        )
        if policy.school_end_time <= policy.school_start_time:
            raise ValidationError("school_end_time must be after school_start_time")
        if policy.staff_shift_end <= policy.staff_shift_start:
            raise ValidationError("staff_shift_end must be after staff_shift_start")
        return policy
