from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from ..core.enums import AttendanceStatus, SubjectType, SummaryFlag
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import AttendanceSummary, SummaryFlags
from .repository import SummaryRepository

_COLUMNS = """
    summary_id, tenant_id, branch_id, subject_type, subject_user_id, work_date, status, computed_status,
    earliest_check_in, latest_check_out, late_minutes, early_minutes, overtime_minutes, total_hours_worked,
    flag_missing_checkout, flag_outside_policy, flag_register_conflict, flag_overridden,
    override_reason, overridden_by, overridden_at, computed_at
"""

_FLAG_COLUMNS = {
    SummaryFlag.MISSING_CHECKOUT: "flag_missing_checkout",
    SummaryFlag.OUTSIDE_POLICY: "flag_outside_policy",
    SummaryFlag.REGISTER_CONFLICT: "flag_register_conflict",
    SummaryFlag.OVERRIDDEN: "flag_overridden",
}


def _row_to_summary(r: dict) -> AttendanceSummary:
    flags = SummaryFlags.from_iterable(flag for flag, col in _FLAG_COLUMNS.items() if r.get(col))
    return AttendanceSummary(
        summary_id=int(r["summary_id"]),
        tenant_id=r["tenant_id"],
        branch_id=r["branch_id"],
        subject_type=SubjectType(r["subject_type"]),
        subject_user_id=r["subject_user_id"],
        work_date=r["work_date"],
        status=AttendanceStatus(r["status"]),
        computed_status=AttendanceStatus(r["computed_status"]),
        earliest_check_in=r.get("earliest_check_in"),
        latest_check_out=r.get("latest_check_out"),
        late_minutes=int(r["late_minutes"]),
        early_minutes=int(r["early_minutes"]),
        overtime_minutes=int(r["overtime_minutes"]),
        total_hours_worked=float(r["total_hours_worked"] or 0),
        flags=flags,
        override_reason=r.get("override_reason"),
        overridden_by=r.get("overridden_by"),
        overridden_at=r.get("overridden_at"),
        computed_at=r["computed_at"],
    )


class MySQLSummaryRepository(SummaryRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, *, tenant_id: str, subject_user_id: str, work_date: date) -> Optional[AttendanceSummary]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM attendance_summaries
                WHERE tenant_id=%s AND subject_user_id=%s AND work_date=%s
                """,
                (tenant_id, subject_user_id, work_date),
            )
            r = fetchone(cur)
            return _row_to_summary(r) if r else None

    def get_by_id(self, *, tenant_id: str, summary_id: int) -> Optional[AttendanceSummary]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_summaries WHERE tenant_id=%s AND summary_id=%s",
                (tenant_id, int(summary_id)),
            )
            r = fetchone(cur)
            return _row_to_summary(r) if r else None

    def save_computed(self, summary: AttendanceSummary) -> AttendanceSummary:
        flags = summary.flags
        with db_cursor(self._conn_factory) as (_, cur):
            # An overridden row keeps its authoritative status; only computed fields move.
            cur.execute(
                """
                INSERT INTO attendance_summaries(
                    tenant_id, branch_id, subject_type, subject_user_id, work_date, status, computed_status,
                    earliest_check_in, latest_check_out, late_minutes, early_minutes, overtime_minutes,
                    total_hours_worked, flag_missing_checkout, flag_outside_policy, flag_register_conflict,
                    computed_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    branch_id=VALUES(branch_id),
                    status=IF(flag_overridden=1, status, VALUES(status)),
                    computed_status=VALUES(computed_status),
                    earliest_check_in=VALUES(earliest_check_in),
                    latest_check_out=VALUES(latest_check_out),
                    late_minutes=VALUES(late_minutes),
                    early_minutes=VALUES(early_minutes),
                    overtime_minutes=VALUES(overtime_minutes),
                    total_hours_worked=VALUES(total_hours_worked),
                    flag_missing_checkout=VALUES(flag_missing_checkout),
                    flag_outside_policy=VALUES(flag_outside_policy),
                    flag_register_conflict=VALUES(flag_register_conflict),
                    computed_at=VALUES(computed_at)
                """,
                (
                    summary.tenant_id,
                    summary.branch_id,
                    summary.subject_type.value,
                    summary.subject_user_id,
                    summary.work_date,
                    summary.computed_status.value,
                    summary.computed_status.value,
                    summary.earliest_check_in,
                    summary.latest_check_out,
                    summary.late_minutes,
                    summary.early_minutes,
                    summary.overtime_minutes,
                    summary.total_hours_worked,
                    int(SummaryFlag.MISSING_CHECKOUT in flags),
                    int(SummaryFlag.OUTSIDE_POLICY in flags),
                    int(SummaryFlag.REGISTER_CONFLICT in flags),
                    summary.computed_at,
                ),
            )
        stored = self.get(tenant_id=summary.tenant_id, subject_user_id=summary.subject_user_id, work_date=summary.work_date)
        if stored is None:
            raise RuntimeError("summary upsert did not persist")
        return stored

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
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO summary_overrides(summary_id, tenant_id, previous_status, new_status, reason, resolved_by, resolved_at)
                SELECT summary_id, tenant_id, status, %s, %s, %s, %s
                FROM attendance_summaries
                WHERE tenant_id=%s AND summary_id=%s AND flag_overridden=0
                """,
                (new_status.value, reason, resolved_by, resolved_at, tenant_id, int(summary_id)),
            )
            cur.execute(
                """
                UPDATE attendance_summaries
                SET status=%s, flag_overridden=1, override_reason=%s, overridden_by=%s, overridden_at=%s
                WHERE tenant_id=%s AND summary_id=%s AND flag_overridden=0
                """,
                (new_status.value, reason, resolved_by, resolved_at, tenant_id, int(summary_id)),
            )
            return cur.rowcount > 0

    def list_exceptions(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str] = None,
        flag: Optional[SummaryFlag] = None,
        limit: int = 200,
    ) -> Sequence[AttendanceSummary]:
        sql = f"""
            SELECT {_COLUMNS} FROM attendance_summaries
            WHERE tenant_id=%s AND flag_overridden=0
              AND (flag_missing_checkout=1 OR flag_outside_policy=1 OR flag_register_conflict=1)
        """
        params: list = [tenant_id]
        if branch_id:
            sql += " AND branch_id=%s"
            params.append(branch_id)
        if flag is not None and flag != SummaryFlag.OVERRIDDEN:
            sql += f" AND {_FLAG_COLUMNS[flag]}=1"
        sql += " ORDER BY work_date DESC, summary_id DESC LIMIT %s"
        params.append(int(limit))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_summary(r) for r in fetchall(cur)]

    def list_for_branch_day(
        self,
        *,
        tenant_id: str,
        branch_id: str,
        work_date: date,
        subject_type: Optional[SubjectType] = None,
    ) -> Sequence[AttendanceSummary]:
        sql = f"SELECT {_COLUMNS} FROM attendance_summaries WHERE tenant_id=%s AND branch_id=%s AND work_date=%s"
        params: list = [tenant_id, branch_id, work_date]
        if subject_type is not None:
            sql += " AND subject_type=%s"
            params.append(subject_type.value)
        sql += " ORDER BY subject_user_id ASC"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_summary(r) for r in fetchall(cur)]

    def list_for_branch_range(
        self, *, tenant_id: str, branch_id: str, start: date, end: date
    ) -> Sequence[AttendanceSummary]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_summaries
                WHERE tenant_id=%s AND branch_id=%s AND work_date BETWEEN %s AND %s
                ORDER BY subject_user_id ASC, work_date ASC
                """,
                (tenant_id, branch_id, start, end),
            )
            return [_row_to_summary(r) for r in fetchall(cur)]
