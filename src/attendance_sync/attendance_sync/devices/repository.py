from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import ScanPointType
from .model import Device


class DeviceRepository(Protocol):
    def get(self, *, tenant_id: str, device_id: int) -> Optional[Device]:
        raise NotImplementedError

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
        """Create the device or refresh its registration (re-activating it)."""

        raise NotImplementedError

    def touch_heartbeat(self, *, tenant_id: str, device_id: int, seen_at: datetime) -> bool:
        raise NotImplementedError

    def list_for_branch(self, *, tenant_id: str, branch_id: Optional[str]) -> Sequence[Device]:
        raise NotImplementedError

    def set_active(self, *, tenant_id: str, device_id: int, is_active: bool) -> bool:
        raise NotImplementedError
