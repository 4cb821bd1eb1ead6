from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from ..common.logging import get_logger
from ..core.enums import EventSource, PushItemStatus
from ..core.exceptions import NotFoundError, ValidationError
from ..subjects.service import SubjectService
from .model import AttendanceEvent
from .repository import EventRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordResult:
    event: AttendanceEvent
    created: bool

    @property
    def status(self) -> PushItemStatus:
        return PushItemStatus.CREATED if self.created else PushItemStatus.DUPLICATE


@dataclass(frozen=True)
class PushItemResult:
    idempotency_key: Optional[str]
    status: PushItemStatus
    reason: Optional[str] = None
    event: Optional[AttendanceEvent] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"idempotency_key": self.idempotency_key, "status": self.status.value}
        if self.reason:
            data["reason"] = self.reason
        return data


class EventService:
    """Idempotent ingestion of attendance events."""

    def __init__(self, events: EventRepository, subjects: SubjectService):
        self._events = events
        self._subjects = subjects

    def _resolve_subject(self, event: AttendanceEvent) -> AttendanceEvent:
        if event.qr_token:
            subject = self._subjects.resolve_token(tenant_id=event.tenant_id, token=event.qr_token)
            if event.subject_user_id and event.subject_user_id != subject.user_id:
                raise ValidationError("subject_user_id does not match qr_token")
        else:
            try:
                subject = self._subjects.get(tenant_id=event.tenant_id, user_id=str(event.subject_user_id))
            except NotFoundError as e:
                raise ValidationError(str(e))

        if subject.subject_type != event.subject_type:
            raise ValidationError("subject_type does not match the subject")
        if subject.branch_id != event.branch_id:
            raise ValidationError("subject does not belong to branch")
        return event.with_subject(subject.user_id)

    def record(self, event: AttendanceEvent, *, now: datetime | None = None) -> RecordResult:
        """Store an event once. A replayed key returns the first stored event untouched."""
        now = now or datetime.now()

        existing = self._events.get_by_key(event.idempotency_key)
        if existing:
            return RecordResult(event=existing, created=False)

        resolved = self._resolve_subject(event)
        stored, created = self._events.insert_if_absent(resolved, received_at=now)
        if created:
            logger.info(
                "event %s stored: %s %s %s via %s",
                stored.idempotency_key,
                stored.subject_user_id,
                stored.event_type.value,
                stored.captured_at_device.isoformat(),
                stored.source.value,
            )
        return RecordResult(event=stored, created=created)

    def record_batch(
        self,
        payloads: Iterable[Mapping[str, Any]],
        *,
        tenant_id: str,
        now: datetime | None = None,
    ) -> list[PushItemResult]:
        """Record every item independently; one bad item never aborts the batch."""
        now = now or datetime.now()
        results: list[PushItemResult] = []

        for payload in payloads:
            key = payload.get("idempotency_key") if isinstance(payload, Mapping) else None
            try:
                event = AttendanceEvent.from_dict(payload)
                if event.tenant_id != tenant_id:
                    raise ValidationError("event belongs to another tenant")
                result = self.record(event, now=now)
            except ValidationError as e:
                logger.warning("event %s rejected: %s", key, e)
                results.append(PushItemResult(idempotency_key=key, status=PushItemStatus.REJECTED, reason=str(e)))
                continue

            results.append(
                PushItemResult(idempotency_key=result.event.idempotency_key, status=result.status, event=result.event)
            )
        return results

    def list_for_subject_day(self, *, tenant_id: str, subject_user_id: str, work_date) -> list[AttendanceEvent]:
        return list(
            self._events.list_for_subject_day(tenant_id=tenant_id, subject_user_id=subject_user_id, work_date=work_date)
        )

    def last_gate_events(self, *, tenant_id: str, branch_id: str, work_date) -> list[AttendanceEvent]:
        """Latest gate event per subject at a branch that day (register marks excluded)."""
        latest: dict[str, AttendanceEvent] = {}
        for event in self._events.list_for_branch_day(tenant_id=tenant_id, branch_id=branch_id, work_date=work_date):
            if event.source != EventSource.MANUAL_REGISTER and event.subject_user_id:
                latest[event.subject_user_id] = event
        return list(latest.values())
