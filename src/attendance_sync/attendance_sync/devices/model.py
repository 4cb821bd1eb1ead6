from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import ScanPointType


@dataclass(frozen=True)
class Device:
    """A registered kiosk."""

    device_id: int
    tenant_id: str
    branch_id: str
    device_code: str
    device_name: str
    location_label: Optional[str]
    scan_point_type: ScanPointType
    is_active: bool = True
    last_heartbeat_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "branch_id": self.branch_id,
            "device_code": self.device_code,
            "device_name": self.device_name,
            "location_label": self.location_label,
            "scan_point_type": self.scan_point_type.value,
            "is_active": self.is_active,
            "last_heartbeat_at": self.last_heartbeat_at.isoformat() if self.last_heartbeat_at else None,
        }
