from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from ..core.enums import EarlyLeaveStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import EarlyLeaveRequest
from .repository import EarlyLeaveRepository

_COLUMNS = """
    request_id, tenant_id, branch_id, learner_user_id, leave_date, pickup_person_name, pickup_person_relation,
    status, reason, requested_by, decided_by, decided_at, rejection_reason, completed_event_key, created_at
"""


def _row_to_request(r: dict) -> EarlyLeaveRequest:
    return EarlyLeaveRequest(
        request_id=int(r["request_id"]),
        tenant_id=r["tenant_id"],
        branch_id=r.get("branch_id"),
        learner_user_id=r["learner_user_id"],
        leave_date=r["leave_date"],
        pickup_person_name=r["pickup_person_name"],
        pickup_person_relation=r["pickup_person_relation"],
        status=EarlyLeaveStatus(r["status"]),
        reason=r.get("reason"),
        requested_by=r.get("requested_by"),
        decided_by=r.get("decided_by"),
        decided_at=r.get("decided_at"),
        rejection_reason=r.get("rejection_reason"),
        completed_event_key=r.get("completed_event_key"),
        created_at=r.get("created_at"),
    )


class MySQLEarlyLeaveRepository(EarlyLeaveRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str],
        learner_user_id: str,
        leave_date: date,
        pickup_person_name: str,
        pickup_person_relation: str,
        reason: Optional[str],
        requested_by: Optional[str],
    ) -> EarlyLeaveRequest:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO early_leave_requests(
                    tenant_id, branch_id, learner_user_id, leave_date, pickup_person_name, pickup_person_relation,
                    reason, status, requested_by
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    tenant_id,
                    branch_id,
                    learner_user_id,
                    leave_date,
                    pickup_person_name,
                    pickup_person_relation,
                    reason,
                    EarlyLeaveStatus.PENDING.value,
                    requested_by,
                ),
            )
            request_id = int(cur.lastrowid)
            cur.execute(f"SELECT {_COLUMNS} FROM early_leave_requests WHERE request_id=%s", (request_id,))
            return _row_to_request(fetchone(cur))

    def get(self, *, tenant_id: str, request_id: int) -> Optional[EarlyLeaveRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM early_leave_requests WHERE tenant_id=%s AND request_id=%s",
                (tenant_id, int(request_id)),
            )
            r = fetchone(cur)
            return _row_to_request(r) if r else None

    def decide(
        self,
        *,
        tenant_id: str,
        request_id: int,
        status: EarlyLeaveStatus,
        decided_by: Optional[str],
        decided_at: datetime,
        rejection_reason: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE early_leave_requests
                SET status=%s, decided_by=%s, decided_at=%s, rejection_reason=%s
                WHERE tenant_id=%s AND request_id=%s AND status=%s
                """,
                (
                    status.value,
                    decided_by,
                    decided_at,
                    rejection_reason,
                    tenant_id,
                    int(request_id),
                    EarlyLeaveStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def get_approved_for(self, *, tenant_id: str, learner_user_id: str, leave_date: date) -> Optional[EarlyLeaveRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM early_leave_requests
                WHERE tenant_id=%s AND learner_user_id=%s AND leave_date=%s AND status=%s
                ORDER BY created_at ASC, request_id ASC
                LIMIT 1
                """,
                (tenant_id, learner_user_id, leave_date, EarlyLeaveStatus.APPROVED.value),
            )
            r = fetchone(cur)
            return _row_to_request(r) if r else None

    def mark_completed(self, *, tenant_id: str, request_id: int, event_key: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE early_leave_requests
                SET status=%s, completed_event_key=%s
                WHERE tenant_id=%s AND request_id=%s AND status=%s
                """,
                (
                    EarlyLeaveStatus.COMPLETED.value,
                    event_key,
                    tenant_id,
                    int(request_id),
                    EarlyLeaveStatus.APPROVED.value,
                ),
            )
            return cur.rowcount > 0

    def list_requests(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str] = None,
        status: Optional[EarlyLeaveStatus] = None,
        leave_date: Optional[date] = None,
        limit: int = 100,
    ) -> Sequence[EarlyLeaveRequest]:
        clauses = ["tenant_id=%s"]
        params: list = [tenant_id]
        if branch_id:
            clauses.append("branch_id=%s")
            params.append(branch_id)
        if status:
            clauses.append("status=%s")
            params.append(status.value)
        if leave_date:
            clauses.append("leave_date=%s")
            params.append(leave_date)
        params.append(int(limit))
        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM early_leave_requests
                WHERE {where}
                ORDER BY created_at DESC, request_id DESC
                LIMIT %s
                """,
                tuple(params),
            )
            return [_row_to_request(r) for r in fetchall(cur)]
