from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from ..common.logging import get_logger
from ..common.validators import optional_str, require_enum, require_non_empty
from ..core.enums import ScanPointType
from ..core.exceptions import NotFoundError, ValidationError
from .model import Device
from .repository import DeviceRepository

logger = get_logger(__name__)


class DeviceService:
    def __init__(self, devices: DeviceRepository):
        self._devices = devices

    def register(self, payload: Mapping[str, Any], *, tenant_id: str, now: datetime | None = None) -> Device:
        """Register a kiosk on first contact; re-registering the same code refreshes it."""
        now = now or datetime.now()
        scan_point = payload.get("scan_point_type") or ScanPointType.GATE.value
        device = self._devices.upsert_registration(
            tenant_id=tenant_id,
            branch_id=require_non_empty(payload.get("branch_id"), "branch_id"),
            device_code=require_non_empty(payload.get("device_code"), "device_code"),
            device_name=require_non_empty(payload.get("device_name") or payload.get("device_code"), "device_name"),
            location_label=optional_str(payload.get("location_label")),
            scan_point_type=require_enum(ScanPointType, scan_point, "scan_point_type"),
            seen_at=now,
        )
        logger.info("device %s registered as #%s (%s)", device.device_code, device.device_id, device.branch_id)
        return device

    def get_active(self, *, tenant_id: str, device_id: Any) -> Device:
        try:
            device_pk = int(device_id)
        except (TypeError, ValueError):
            raise ValidationError("device_id must be an integer")
        device = self._devices.get(tenant_id=tenant_id, device_id=device_pk)
        if not device:
            raise NotFoundError("Device not registered")
        if not device.is_active:
            raise ValidationError("Device is deactivated")
        return device

    def heartbeat(self, *, tenant_id: str, device_id: Any, now: datetime | None = None) -> Device:
        now = now or datetime.now()
        device = self.get_active(tenant_id=tenant_id, device_id=device_id)
        self._devices.touch_heartbeat(tenant_id=tenant_id, device_id=device.device_id, seen_at=now)
        return self._devices.get(tenant_id=tenant_id, device_id=device.device_id) or device

    def touch(self, *, tenant_id: str, device_id: Optional[str], now: datetime) -> None:
        """Liveness side effect of a freshly stored event; unknown devices are ignored."""
        if not device_id or not str(device_id).isdigit():
            return
        self._devices.touch_heartbeat(tenant_id=tenant_id, device_id=int(device_id), seen_at=now)

    def list_devices(self, *, tenant_id: str, branch_id: Optional[str] = None) -> list[Device]:
        return list(self._devices.list_for_branch(tenant_id=tenant_id, branch_id=branch_id))

    def deactivate(self, *, tenant_id: str, device_id: Any) -> Device:
        device = self.get_active(tenant_id=tenant_id, device_id=device_id)
        self._devices.set_active(tenant_id=tenant_id, device_id=device.device_id, is_active=False)
        logger.info("device %s deactivated", device.device_code)
        return self._devices.get(tenant_id=tenant_id, device_id=device.device_id) or device
