from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..common.logging import get_logger
from ..core.enums import EventSource, EventType, ScanOutcome, SubjectType
from ..core.exceptions import ValidationError
from ..devices.service import DeviceService
from ..early_leave.model import EarlyLeaveRequest
from ..early_leave.service import EarlyLeaveService
from ..events.model import AttendanceEvent
from ..events.service import EventService
from ..policies.service import PolicyService
from ..subjects.model import Subject
from ..subjects.service import SubjectService
from ..summaries.service import SummaryService
from ..tokens.service import is_pin_token

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
    subject: Subject
    event: Optional[AttendanceEvent] = None
    early_leave: Optional[EarlyLeaveRequest] = None

    def to_dict(self) -> dict:
        data = {
            "status": self.outcome.value,
            "event_type": self.event.event_type.value if self.event else None,
            "idempotency_key": self.event.idempotency_key if self.event else None,
            "subject_type": self.subject.subject_type.value,
            "learner_name": self.subject.display_name,
            "grade": self.subject.grade,
            "class_name": self.subject.class_name,
            "blocked": self.outcome == ScanOutcome.BLOCKED,
            "early_leave": self.early_leave is not None,
        }
        if self.outcome == ScanOutcome.BLOCKED:
            data["block_reason"] = self.subject.block_reason
        if self.early_leave is not None:
            data["pickup_person_name"] = self.early_leave.pickup_person_name
            data["pickup_person_relation"] = self.early_leave.pickup_person_relation
        return data


class KioskScanService:
    """Online kiosk scan: identify, gate-check, classify and record in one call."""

    def __init__(
        self,
        *,
        devices: DeviceService,
        subjects: SubjectService,
        events: EventService,
        policies: PolicyService,
        summaries: SummaryService,
        early_leave: EarlyLeaveService,
    ):
        self._devices = devices
        self._subjects = subjects
        self._events = events
        self._policies = policies
        self._summaries = summaries
        self._early_leave = early_leave

    def _next_event_type(
        self, *, subject: Subject, captured_at: datetime, anti_passback_minutes: int
    ) -> tuple[EventType, bool]:
        """Toggle from the last gate event today; a repeat inside the window keeps its type."""
        today = [
            e
            for e in self._events.list_for_subject_day(
                tenant_id=subject.tenant_id, subject_user_id=subject.user_id, work_date=captured_at.date()
            )
            if e.source != EventSource.MANUAL_REGISTER and e.captured_at_device <= captured_at
        ]
        if not today:
            return EventType.CHECK_IN, False

        last = today[-1]
        if captured_at - last.captured_at_device <= timedelta(minutes=anti_passback_minutes):
            return last.event_type, True
        if last.event_type == EventType.CHECK_IN:
            return EventType.CHECK_OUT, False
        return EventType.CHECK_IN, False

    def scan(
        self,
        *,
        tenant_id: str,
        qr_token: str,
        device_id,
        idempotency_key: Optional[str] = None,
        captured_at: Optional[datetime] = None,
        now: datetime | None = None,
    ) -> ScanResult:
        now = now or datetime.now()
        captured_at = captured_at or now
        token = (qr_token or "").strip()
        if not token:
            raise ValidationError("qr_token is required")

        device = self._devices.get_active(tenant_id=tenant_id, device_id=device_id)
        subject = self._subjects.resolve_token(tenant_id=tenant_id, token=token)
        if subject.branch_id != device.branch_id:
            raise ValidationError("Not enrolled at this branch")

        if subject.is_blocked:
            logger.info("blocked scan of %s at device %s: %s", subject.user_id, device.device_code, subject.block_reason)
            return ScanResult(outcome=ScanOutcome.BLOCKED, subject=subject)

        policy = self._policies.get_effective(tenant_id=tenant_id, branch_id=device.branch_id)
        event_type, repeat = self._next_event_type(
            subject=subject, captured_at=captured_at, anti_passback_minutes=policy.anti_passback_minutes
        )

        event = AttendanceEvent(
            idempotency_key=idempotency_key or f"srv-{device.device_id}-{uuid.uuid4().hex}",
            tenant_id=tenant_id,
            branch_id=device.branch_id,
            subject_type=subject.subject_type,
            subject_user_id=subject.user_id,
            event_type=event_type,
            source=EventSource.KIOSK_SCAN,
            captured_at_device=captured_at,
            qr_token=None if is_pin_token(token) else token,
            device_id=str(device.device_id),
        )
        result = self._events.record(event, now=now)
        stored = result.event
        if not result.created:
            return ScanResult(outcome=ScanOutcome.DUPLICATE, subject=subject, event=stored)

        early_leave = None
        if stored.event_type == EventType.CHECK_OUT and subject.subject_type == SubjectType.LEARNER and not repeat:
            early_leave = self._early_leave.claim_for_checkout(
                tenant_id=tenant_id,
                learner_user_id=subject.user_id,
                on_date=stored.work_date,
                event_key=stored.idempotency_key,
            )

        self._summaries.recompute_for_event(stored, now=now)
        self._devices.touch(tenant_id=tenant_id, device_id=stored.device_id, now=now)

        outcome = ScanOutcome.DUPLICATE if repeat else ScanOutcome.SUCCESS
        return ScanResult(outcome=outcome, subject=subject, event=stored, early_leave=early_leave)
