from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Any, Iterable, Optional, Sequence

import mysql.connector
from mysql.connector import errorcode

from ..core.enums import EventSource, EventType, RegisterMark, SubjectType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import AttendanceEvent, EventOverride
from .repository import EventRepository

_COLUMNS = """
    event_id, idempotency_key, tenant_id, branch_id, subject_type, subject_user_id, event_type, source,
    captured_at_device, captured_at_server, captured_lat, captured_lng, captured_accuracy_m,
    qr_token, device_id, register_mark
"""


def _float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _row_to_event(r: dict) -> AttendanceEvent:
    return AttendanceEvent(
        event_id=int(r["event_id"]),
        idempotency_key=r["idempotency_key"],
        tenant_id=r["tenant_id"],
        branch_id=r["branch_id"],
        subject_type=SubjectType(r["subject_type"]),
        subject_user_id=r["subject_user_id"],
        event_type=EventType(r["event_type"]),
        source=EventSource(r["source"]),
        captured_at_device=r["captured_at_device"],
        captured_at_server=r.get("captured_at_server"),
        captured_lat=_float(r.get("captured_lat")),
        captured_lng=_float(r.get("captured_lng")),
        captured_accuracy_m=_float(r.get("captured_accuracy_m")),
        qr_token=r.get("qr_token"),
        device_id=r.get("device_id"),
        register_mark=RegisterMark(r["register_mark"]) if r.get("register_mark") else None,
    )


_OVERRIDE_COLUMNS = """
    override_id, tenant_id, event_id, previous_event_type, new_event_type, reason, overridden_by, overridden_at
"""


def _row_to_override(r: dict) -> EventOverride:
    return EventOverride(
        override_id=int(r["override_id"]),
        tenant_id=r["tenant_id"],
        event_id=int(r["event_id"]),
        previous_event_type=EventType(r["previous_event_type"]),
        new_event_type=EventType(r["new_event_type"]),
        reason=r["reason"],
        overridden_by=r.get("overridden_by"),
        overridden_at=r["overridden_at"],
    )

class MySQLEventRepository(EventRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def insert_if_absent(self, event: AttendanceEvent, *, received_at: datetime) -> tuple[AttendanceEvent, bool]:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_events(
                        idempotency_key, tenant_id, branch_id, subject_type, subject_user_id, event_type, source,
                        captured_at_device, captured_at_server, work_date, captured_lat, captured_lng,
                        captured_accuracy_m, qr_token, device_id, register_mark
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        event.idempotency_key,
                        event.tenant_id,
                        event.branch_id,
                        event.subject_type.value,
                        event.subject_user_id,
                        event.event_type.value,
                        event.source.value,
                        event.captured_at_device,
                        received_at,
                        event.work_date,
                        event.captured_lat,
                        event.captured_lng,
                        event.captured_accuracy_m,
                        event.qr_token,
                        event.device_id,
                        event.register_mark.value if event.register_mark else None,
                    ),
                )
                event_id = int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            if e.errno != errorcode.ER_DUP_ENTRY:
                raise
            existing = self.get_by_key(event.idempotency_key)
            if existing is None:
                raise
            return existing, False

        return event.stored(event_id=event_id, captured_at_server=received_at), True

    def get_by_key(self, idempotency_key: str) -> Optional[AttendanceEvent]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM attendance_events WHERE idempotency_key=%s", (idempotency_key,))
            r = fetchone(cur)
            return _row_to_event(r) if r else None

    def get_by_id(self, *, tenant_id: str, event_id: int) -> Optional[AttendanceEvent]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_events WHERE tenant_id=%s AND event_id=%s",
                (tenant_id, int(event_id)),
            )
            r = fetchone(cur)
            return _row_to_event(r) if r else None

    def list_for_subject_day(self, *, tenant_id: str, subject_user_id: str, work_date: date) -> Sequence[AttendanceEvent]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_events
                WHERE tenant_id=%s AND subject_user_id=%s AND work_date=%s
                ORDER BY captured_at_device ASC, event_id ASC
                """,
                (tenant_id, subject_user_id, work_date),
            )
            return [_row_to_event(r) for r in fetchall(cur)]

    def list_for_branch_day(self, *, tenant_id: str, branch_id: str, work_date: date) -> Sequence[AttendanceEvent]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_events
                WHERE tenant_id=%s AND branch_id=%s AND work_date=%s
                ORDER BY captured_at_device ASC, event_id ASC
                """,
                (tenant_id, branch_id, work_date),
            )
            return [_row_to_event(r) for r in fetchall(cur)]

    def list_subjects_for_branch_day(self, *, tenant_id: str, branch_id: str, work_date: date) -> Sequence[tuple[str, str]]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT DISTINCT subject_type, subject_user_id
                FROM attendance_events
                WHERE tenant_id=%s AND branch_id=%s AND work_date=%s
                """,
                (tenant_id, branch_id, work_date),
            )
            return [(r["subject_type"], r["subject_user_id"]) for r in fetchall(cur)]

    def add_override(self, override: EventOverride) -> EventOverride:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO event_overrides(
                    tenant_id, event_id, previous_event_type, new_event_type, reason, overridden_by, overridden_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    override.tenant_id,
                    override.event_id,
                    override.previous_event_type.value,
                    override.new_event_type.value,
                    override.reason,
                    override.overridden_by,
                    override.overridden_at,
                ),
            )
            return replace(override, override_id=int(cur.lastrowid))

    def latest_overrides(self, *, tenant_id: str, event_ids: Iterable[int]) -> dict[int, EventOverride]:
        ids = [int(i) for i in event_ids]
        if not ids:
            return {}
        placeholders = ", ".join(["%s"] * len(ids))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_OVERRIDE_COLUMNS}
                FROM event_overrides
                WHERE tenant_id=%s AND event_id IN ({placeholders})
                ORDER BY override_id ASC
                """,
                (tenant_id, *ids),
            )
            # Later rows replace earlier ones: the newest override per event wins.
            return {o.event_id: o for o in map(_row_to_override, fetchall(cur))}

    def list_overrides(self, *, tenant_id: str, event_id: int) -> Sequence[EventOverride]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_OVERRIDE_COLUMNS}
                FROM event_overrides
                WHERE tenant_id=%s AND event_id=%s
                ORDER BY override_id ASC
                """,
                (tenant_id, int(event_id)),
            )
            return [_row_to_override(r) for r in fetchall(cur)]
