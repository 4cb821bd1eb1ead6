from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import EventSource, EventType, SubjectType
from ..events.model import AttendanceEvent
from .idempotency import IdempotencyKeyGenerator
from .sync import SyncCoordinator, SyncReport


@dataclass(frozen=True)
class GeoFix:
    lat: float
    lng: float
    accuracy_m: Optional[float] = None


class MobileCheckIn:
    """Staff self check-in from a phone with a geolocation fix.

    Uses the same queue and sync path as kiosk scans, so it works offline too.
    """

    def __init__(
        self,
        *,
        coordinator: SyncCoordinator,
        keys: IdempotencyKeyGenerator,
        tenant_id: str,
        branch_id: str,
        user_id: str,
        subject_type: SubjectType = SubjectType.STAFF,
    ):
        self._coordinator = coordinator
        self._keys = keys
        self._tenant_id = tenant_id
        self._branch_id = branch_id
        self._user_id = user_id
        self._subject_type = subject_type

    def build_event(self, fix: GeoFix, *, event_type: EventType, at: datetime) -> AttendanceEvent:
        # Round-trip through from_dict so coordinates are range-checked before queueing.
        return AttendanceEvent.from_dict(
            {
                "idempotency_key": self._keys.new_key(at=at),
                "tenant_id": self._tenant_id,
                "branch_id": self._branch_id,
                "subject_type": self._subject_type.value,
                "subject_user_id": self._user_id,
                "event_type": event_type.value,
                "source": EventSource.PWA_GEO.value,
                "captured_at_device": at,
                "captured_lat": fix.lat,
                "captured_lng": fix.lng,
                "captured_accuracy_m": fix.accuracy_m,
            }
        )

    def check_in(self, fix: GeoFix, *, now: datetime | None = None) -> tuple[AttendanceEvent, Optional[SyncReport]]:
        now = now or datetime.now()
        event = self.build_event(fix, event_type=EventType.CHECK_IN, at=now)
        return event, self._coordinator.submit(event, now=now)

    def check_out(self, fix: GeoFix, *, now: datetime | None = None) -> tuple[AttendanceEvent, Optional[SyncReport]]:
        now = now or datetime.now()
        event = self.build_event(fix, event_type=EventType.CHECK_OUT, at=now)
        return event, self._coordinator.submit(event, now=now)
