from __future__ import annotations

import json
from dataclasses import replace
from datetime import date, datetime
from typing import Optional, Sequence

from ..core.enums import RegisterMark
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, load_json_list
from .model import ClassRegister, RegisterEntry
from .repository import ClassRegisterRepository

_COLUMNS = """
    register_id, tenant_id, branch_id, class_id, register_date, teacher_user_id, marks,
    revision, is_final, submitted_at, finalized_at
"""


def _row_to_register(r: dict) -> ClassRegister:
    return ClassRegister(
        register_id=int(r["register_id"]),
        tenant_id=r["tenant_id"],
        branch_id=r["branch_id"],
        class_id=r["class_id"],
        register_date=r["register_date"],
        teacher_user_id=r.get("teacher_user_id"),
        marks=tuple(
            RegisterEntry(learner_user_id=m["learner_user_id"], mark=RegisterMark(m["status"]), notes=m.get("notes"))
            for m in load_json_list(r.get("marks"))
        ),
        revision=int(r["revision"]),
        is_final=bool(r["is_final"]),
        submitted_at=r["submitted_at"],
        finalized_at=r.get("finalized_at"),
    )


class MySQLClassRegisterRepository(ClassRegisterRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, *, tenant_id: str, class_id: str, register_date: date) -> Optional[ClassRegister]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM class_registers WHERE tenant_id=%s AND class_id=%s AND register_date=%s",
                (tenant_id, class_id, register_date),
            )
            r = fetchone(cur)
            return _row_to_register(r) if r else None

    def save_submission(self, register: ClassRegister) -> Optional[ClassRegister]:
        marks = json.dumps([m.to_dict() for m in register.marks])
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM class_registers
                WHERE tenant_id=%s AND class_id=%s AND register_date=%s
                FOR UPDATE
                """,
                (register.tenant_id, register.class_id, register.register_date),
            )
            r = fetchone(cur)
            if r is None:
                cur.execute(
                    """
                    INSERT INTO class_registers(
                        tenant_id, branch_id, class_id, register_date, teacher_user_id, marks,
                        revision, is_final, submitted_at, finalized_at
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        register.tenant_id,
                        register.branch_id,
                        register.class_id,
                        register.register_date,
                        register.teacher_user_id,
                        marks,
                        1,
                        1 if register.is_final else 0,
                        register.submitted_at,
                        register.finalized_at,
                    ),
                )
                return replace(register, register_id=int(cur.lastrowid), revision=1)

            existing = _row_to_register(r)
            if existing.is_final:
                return None
            revision = existing.revision + 1
            cur.execute(
                """
                UPDATE class_registers
                SET branch_id=%s, teacher_user_id=%s, marks=%s, revision=%s, is_final=%s,
                    submitted_at=%s, finalized_at=%s
                WHERE register_id=%s
                """,
                (
                    register.branch_id,
                    register.teacher_user_id,
                    marks,
                    revision,
                    1 if register.is_final else 0,
                    register.submitted_at,
                    register.finalized_at,
                    existing.register_id,
                ),
            )
            return replace(register, register_id=existing.register_id, revision=revision)

    def finalize(self, *, tenant_id: str, class_id: str, register_date: date, finalized_at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE class_registers
                SET is_final=1, finalized_at=%s
                WHERE tenant_id=%s AND class_id=%s AND register_date=%s AND is_final=0
                """,
                (finalized_at, tenant_id, class_id, register_date),
            )
            return cur.rowcount > 0

    def list_for_branch(self, *, tenant_id: str, branch_id: str, register_date: date) -> Sequence[ClassRegister]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM class_registers
                WHERE tenant_id=%s AND branch_id=%s AND register_date=%s
                ORDER BY class_id ASC
                """,
                (tenant_id, branch_id, register_date),
            )
            return [_row_to_register(r) for r in fetchall(cur)]
