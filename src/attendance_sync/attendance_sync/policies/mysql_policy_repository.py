from __future__ import annotations

import json
from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, load_json_list, normalize_mysql_time
from .model import AttendancePolicy
from .repository import PolicyRepository

_COLUMNS = """
    policy_id, tenant_id, branch_id, working_days, school_start_time, school_end_time,
    staff_shift_start, staff_shift_end, grace_minutes, overtime_grace_minutes, late_threshold_minutes,
    missing_checkout_cutoff_minutes, anti_passback_minutes, is_active, updated_at
"""


def _row_to_policy(r: dict) -> AttendancePolicy:
    return AttendancePolicy(
        policy_id=int(r["policy_id"]),
        tenant_id=r["tenant_id"],
        branch_id=r.get("branch_id"),
        working_days=tuple(load_json_list(r["working_days"])),
        school_start_time=normalize_mysql_time(r["school_start_time"]),
        school_end_time=normalize_mysql_time(r["school_end_time"]),
        staff_shift_start=normalize_mysql_time(r["staff_shift_start"]),
        staff_shift_end=normalize_mysql_time(r["staff_shift_end"]),
        grace_minutes=int(r["grace_minutes"]),
        overtime_grace_minutes=int(r["overtime_grace_minutes"]),
        late_threshold_minutes=int(r["late_threshold_minutes"]),
        missing_checkout_cutoff_minutes=int(r["missing_checkout_cutoff_minutes"]),
        anti_passback_minutes=int(r["anti_passback_minutes"]),
        is_active=bool(r["is_active"]),
        updated_at=r.get("updated_at"),
    )


class MySQLPolicyRepository(PolicyRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_active(self, *, tenant_id: str, branch_id: Optional[str]) -> Optional[AttendancePolicy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_policies
                WHERE tenant_id=%s AND branch_key=%s AND is_active=1
                """,
                (tenant_id, branch_id or ""),
            )
            r = fetchone(cur)
            return _row_to_policy(r) if r else None

    def upsert(self, policy: AttendancePolicy) -> AttendancePolicy:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_policies(
                    tenant_id, branch_id, working_days, school_start_time, school_end_time,
                    staff_shift_start, staff_shift_end, grace_minutes, overtime_grace_minutes,
                    late_threshold_minutes, missing_checkout_cutoff_minutes, anti_passback_minutes, is_active
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,1)
                ON DUPLICATE KEY UPDATE
                    working_days=VALUES(working_days),
                    school_start_time=VALUES(school_start_time), school_end_time=VALUES(school_end_time),
                    staff_shift_start=VALUES(staff_shift_start), staff_shift_end=VALUES(staff_shift_end),
                    grace_minutes=VALUES(grace_minutes), overtime_grace_minutes=VALUES(overtime_grace_minutes),
                    late_threshold_minutes=VALUES(late_threshold_minutes),
                    missing_checkout_cutoff_minutes=VALUES(missing_checkout_cutoff_minutes),
                    anti_passback_minutes=VALUES(anti_passback_minutes),
                    is_active=1
                """,
                (
                    policy.tenant_id,
                    policy.branch_id,
                    json.dumps(list(policy.working_days)),
                    policy.school_start_time,
                    policy.school_end_time,
                    policy.staff_shift_start,
                    policy.staff_shift_end,
                    policy.grace_minutes,
                    policy.overtime_grace_minutes,
                    policy.late_threshold_minutes,
                    policy.missing_checkout_cutoff_minutes,
                    policy.anti_passback_minutes,
                ),
            )
        stored = self.get_active(tenant_id=policy.tenant_id, branch_id=policy.branch_id)
        if stored is None:
            raise RuntimeError("policy upsert did not persist")
        return stored
