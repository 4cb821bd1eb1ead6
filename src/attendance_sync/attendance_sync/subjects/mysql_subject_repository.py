from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import SubjectType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Subject
from .repository import SubjectRepository

_COLUMNS = "user_id, tenant_id, branch_id, subject_type, display_name, grade, class_name, pin_digest, block_reason, is_active"


def _row_to_subject(r: dict) -> Subject:
    return Subject(
        user_id=r["user_id"],
        tenant_id=r["tenant_id"],
        branch_id=r["branch_id"],
        subject_type=SubjectType(r["subject_type"]),
        display_name=r["display_name"],
        grade=r.get("grade"),
        class_name=r.get("class_name"),
        pin_digest=r.get("pin_digest"),
        block_reason=r.get("block_reason"),
        is_active=bool(r.get("is_active", 1)),
    )


class MySQLSubjectRepository(SubjectRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, *, tenant_id: str, user_id: str) -> Optional[Subject]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM subjects WHERE tenant_id=%s AND user_id=%s", (tenant_id, user_id))
            r = fetchone(cur)
            return _row_to_subject(r) if r else None

    def get_by_pin_digest(self, *, tenant_id: str, pin_digest: str) -> Optional[Subject]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM subjects WHERE tenant_id=%s AND pin_digest=%s AND is_active=1",
                (tenant_id, pin_digest),
            )
            r = fetchone(cur)
            return _row_to_subject(r) if r else None

    def list_for_branch(
        self,
        *,
        tenant_id: str,
        branch_id: str,
        subject_type: Optional[SubjectType] = None,
    ) -> Sequence[Subject]:
        sql = f"SELECT {_COLUMNS} FROM subjects WHERE tenant_id=%s AND branch_id=%s AND is_active=1"
        params: list = [tenant_id, branch_id]
        if subject_type is not None:
            sql += " AND subject_type=%s"
            params.append(subject_type.value)
        sql += " ORDER BY display_name ASC"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_subject(r) for r in fetchall(cur)]

    def upsert(self, subject: Subject) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO subjects(
                    user_id, tenant_id, branch_id, subject_type, display_name, grade, class_name,
                    pin_digest, block_reason, is_active
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    branch_id=VALUES(branch_id), subject_type=VALUES(subject_type),
                    display_name=VALUES(display_name), grade=VALUES(grade), class_name=VALUES(class_name),
                    pin_digest=VALUES(pin_digest), block_reason=VALUES(block_reason), is_active=VALUES(is_active)
                """,
                (
                    subject.user_id,
                    subject.tenant_id,
                    subject.branch_id,
                    subject.subject_type.value,
                    subject.display_name,
                    subject.grade,
                    subject.class_name,
                    subject.pin_digest,
                    subject.block_reason,
                    1 if subject.is_active else 0,
                ),
            )
