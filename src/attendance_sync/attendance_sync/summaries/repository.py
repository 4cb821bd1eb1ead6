from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus, SubjectType, SummaryFlag
from .model import AttendanceSummary


class SummaryRepository(Protocol):
    def get(self, *, tenant_id: str, subject_user_id: str, work_date: date) -> Optional[AttendanceSummary]:
        raise NotImplementedError

    def get_by_id(self, *, tenant_id: str, summary_id: int) -> Optional[AttendanceSummary]:
        raise NotImplementedError

    def save_computed(self, summary: AttendanceSummary) -> AttendanceSummary:
        """Insert or refresh the computed part of a summary.

        Override fields (status when overridden, reason, actor) of an existing row are preserved.
        """

        raise NotImplementedError

    def apply_override(
        self,
        *,
        tenant_id: str,
        summary_id: int,
        new_status: AttendanceStatus,
        reason: str,
        resolved_by: Optional[str],
        resolved_at: datetime,
    ) -> bool:
        """Set the override only if the summary is not overridden yet; False otherwise."""

        raise NotImplementedError

    def list_exceptions(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str] = None,
        flag: Optional[SummaryFlag] = None,
        limit: int = 200,
    ) -> Sequence[AttendanceSummary]:
        """Flagged, not overridden summaries, newest date first."""

        raise NotImplementedError

    def list_for_branch_day(
        self,
        *,
        tenant_id: str,
        branch_id: str,
        work_date: date,
        subject_type: Optional[SubjectType] = None,
    ) -> Sequence[AttendanceSummary]:
        raise NotImplementedError

    def list_for_branch_range(
        self, *, tenant_id: str, branch_id: str, start: date, end: date
    ) -> Sequence[AttendanceSummary]:
        """Summaries with ``start <= work_date <= end``, ordered by subject then date."""

        raise NotImplementedError
