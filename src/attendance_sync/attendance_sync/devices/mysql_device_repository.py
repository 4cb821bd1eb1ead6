from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import ScanPointType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Device
from .repository import DeviceRepository

_COLUMNS = """
    device_id, tenant_id, branch_id, device_code, device_name, location_label, scan_point_type,
    is_active, last_heartbeat_at
"""


def _row_to_device(r: dict) -> Device:
    return Device(
        device_id=int(r["device_id"]),
        tenant_id=r["tenant_id"],
        branch_id=r["branch_id"],
        device_code=r["device_code"],
        device_name=r["device_name"],
        location_label=r.get("location_label"),
        scan_point_type=ScanPointType(r["scan_point_type"]),
        is_active=bool(r["is_active"]),
        last_heartbeat_at=r.get("last_heartbeat_at"),
    )


class MySQLDeviceRepository(DeviceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, *, tenant_id: str, device_id: int) -> Optional[Device]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM kiosk_devices WHERE tenant_id=%s AND device_id=%s",
                (tenant_id, int(device_id)),
            )
            r = fetchone(cur)
            return _row_to_device(r) if r else None

    def upsert_registration(
        self,
        *,
        tenant_id: str,
        branch_id: str,
        device_code: str,
        device_name: str,
        location_label: Optional[str],
        scan_point_type: ScanPointType,
        seen_at: datetime,
    ) -> Device:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO kiosk_devices(
                    tenant_id, branch_id, device_code, device_name, location_label, scan_point_type,
                    is_active, last_heartbeat_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,1,%s)
                ON DUPLICATE KEY UPDATE
                    branch_id=VALUES(branch_id), device_name=VALUES(device_name),
                    location_label=VALUES(location_label), scan_point_type=VALUES(scan_point_type),
                    is_active=1, last_heartbeat_at=VALUES(last_heartbeat_at)
                """,
                (tenant_id, branch_id, device_code, device_name, location_label, scan_point_type.value, seen_at),
            )
            cur.execute(
                f"SELECT {_COLUMNS} FROM kiosk_devices WHERE tenant_id=%s AND device_code=%s",
                (tenant_id, device_code),
            )
            return _row_to_device(fetchone(cur))

    def touch_heartbeat(self, *, tenant_id: str, device_id: int, seen_at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE kiosk_devices SET last_heartbeat_at=%s WHERE tenant_id=%s AND device_id=%s AND is_active=1",
                (seen_at, tenant_id, int(device_id)),
            )
            return cur.rowcount > 0

    def list_for_branch(self, *, tenant_id: str, branch_id: Optional[str]) -> Sequence[Device]:
        sql = f"SELECT {_COLUMNS} FROM kiosk_devices WHERE tenant_id=%s"
        params: list = [tenant_id]
        if branch_id:
            sql += " AND branch_id=%s"
            params.append(branch_id)
        sql += " ORDER BY device_name ASC"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_device(r) for r in fetchall(cur)]

    def set_active(self, *, tenant_id: str, device_id: int, is_active: bool) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE kiosk_devices SET is_active=%s WHERE tenant_id=%s AND device_id=%s",
                (1 if is_active else 0, tenant_id, int(device_id)),
            )
            return cur.rowcount > 0
