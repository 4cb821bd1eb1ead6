from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..common.logging import get_logger
from ..core.enums import PushItemStatus
from ..core.exceptions import ValidationError
from ..devices.service import DeviceService
from ..events.service import EventService
from ..policies.service import PolicyService
from ..summaries.service import SummaryService

logger = get_logger(__name__)

MAX_PUSH_BATCH = 500


class SyncService:
    """Server half of the sync protocol: batched idempotent push, configuration pull."""

    def __init__(
        self,
        *,
        events: EventService,
        summaries: SummaryService,
        devices: DeviceService,
        policies: PolicyService,
    ):
        self._events = events
        self._summaries = summaries
        self._devices = devices
        self._policies = policies

    def push(self, payload: Any, *, tenant_id: str, now: datetime | None = None) -> dict:
        now = now or datetime.now()
        items = payload.get("events") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ValidationError("events must be a list")
        if len(items) > MAX_PUSH_BATCH:
            raise ValidationError(f"at most {MAX_PUSH_BATCH} events per push")

        results = self._events.record_batch(items, tenant_id=tenant_id, now=now)

        # Duplicates are acknowledged without side effects.
        created = [r.event for r in results if r.status == PushItemStatus.CREATED and r.event is not None]
        recomputed: set[tuple] = set()
        for event in created:
            self._devices.touch(tenant_id=tenant_id, device_id=event.device_id, now=now)
            key = (event.subject_user_id, event.work_date)
            if key in recomputed:
                continue
            recomputed.add(key)
            try:
                self._summaries.recompute_for_event(event, now=now)
            except Exception:
                # The event is stored and acknowledged; the daily roll-up re-grades the day.
                logger.exception("summary recompute failed for %s on %s", event.subject_user_id, event.work_date)

        counts = {s.value: sum(1 for r in results if r.status == s) for s in PushItemStatus}
        logger.info("push from tenant %s: %s", tenant_id, counts)
        return {"status": "success", "results": [r.to_dict() for r in results]}

    def pull(self, *, tenant_id: str, branch_id: Optional[str], now: datetime | None = None) -> dict:
        now = now or datetime.now()
        policy = self._policies.get_effective(tenant_id=tenant_id, branch_id=branch_id)
        devices = self._devices.list_devices(tenant_id=tenant_id, branch_id=branch_id)
        last_seen = []
        if branch_id:
            # Lets an offline kiosk keep alternating direction across gates.
            last_seen = [
                {
                    "subject_user_id": e.subject_user_id,
                    "event_type": e.event_type.value,
                    "captured_at": e.captured_at_device.isoformat(),
                }
                for e in self._events.last_gate_events(tenant_id=tenant_id, branch_id=branch_id, work_date=now.date())
            ]
        return {
            "status": "success",
            "policy": policy.to_dict(),
            "devices": [d.to_dict() for d in devices],
            "last_seen": last_seen,
            "server_time": now.isoformat(),
        }
