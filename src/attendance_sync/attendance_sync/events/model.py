from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import parse_iso_datetime
from ..common.validators import optional_float, optional_str, require_enum, require_non_empty
from ..core.enums import EventSource, EventType, RegisterMark, SubjectType
from ..core.exceptions import ValidationError

MAX_KEY_LENGTH = 128


@dataclass(frozen=True)
class AttendanceEvent:
    """Immutable presence transition captured at an edge device.

    ``idempotency_key`` identifies the logical capture for the lifetime of the
    system: replays with the same key resolve to the first stored event.
    """

    idempotency_key: str
    tenant_id: str
    branch_id: str
    subject_type: SubjectType
    subject_user_id: Optional[str]
    event_type: EventType
    source: EventSource
    captured_at_device: datetime
    captured_lat: Optional[float] = None
    captured_lng: Optional[float] = None
    captured_accuracy_m: Optional[float] = None
    qr_token: Optional[str] = None
    device_id: Optional[str] = None
    register_mark: Optional[RegisterMark] = None
    event_id: Optional[int] = None
    captured_at_server: Optional[datetime] = None

    @property
    def work_date(self) -> date:
        return self.captured_at_device.date()

    @property
    def is_register_mark(self) -> bool:
        return self.source == EventSource.MANUAL_REGISTER

    def with_subject(self, subject_user_id: str) -> "AttendanceEvent":
        return replace(self, subject_user_id=subject_user_id)

    def stored(self, *, event_id: int, captured_at_server: datetime) -> "AttendanceEvent":
        return replace(self, event_id=event_id, captured_at_server=captured_at_server)

    def to_dict(self) -> dict:
        """Wire/queue shape (also the device-local persisted schema)."""
        data: dict[str, Any] = {
            "idempotency_key": self.idempotency_key,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "subject_type": self.subject_type.value,
            "subject_user_id": self.subject_user_id,
            "event_type": self.event_type.value,
            "source": self.source.value,
            "captured_at_device": self.captured_at_device.isoformat(),
        }
        optional = {
            "captured_lat": self.captured_lat,
            "captured_lng": self.captured_lng,
            "captured_accuracy_m": self.captured_accuracy_m,
            "qr_token": self.qr_token,
            "device_id": self.device_id,
            "register_mark": self.register_mark.value if self.register_mark else None,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttendanceEvent":
        """Parse and validate an untrusted payload; raises ValidationError."""
        if not isinstance(data, Mapping):
            raise ValidationError("event must be an object")

        key = require_non_empty(data.get("idempotency_key"), "idempotency_key")
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError("idempotency_key is too long")

        captured_raw = data.get("captured_at_device")
        if isinstance(captured_raw, datetime):
            captured_at = captured_raw
        else:
            captured_at = parse_iso_datetime(require_non_empty(captured_raw, "captured_at_device"))

        register_mark = data.get("register_mark")
        event = cls(
            idempotency_key=key,
            tenant_id=require_non_empty(data.get("tenant_id"), "tenant_id"),
            branch_id=require_non_empty(data.get("branch_id"), "branch_id"),
            subject_type=require_enum(SubjectType, data.get("subject_type"), "subject_type"),
            subject_user_id=optional_str(data.get("subject_user_id")),
            event_type=require_enum(EventType, data.get("event_type"), "event_type"),
            source=require_enum(EventSource, data.get("source"), "source"),
            captured_at_device=captured_at,
            captured_lat=optional_float(data.get("captured_lat"), "captured_lat", lo=-90, hi=90),
            captured_lng=optional_float(data.get("captured_lng"), "captured_lng", lo=-180, hi=180),
            captured_accuracy_m=optional_float(data.get("captured_accuracy_m"), "captured_accuracy_m", lo=0),
            qr_token=optional_str(data.get("qr_token")),
            device_id=optional_str(data.get("device_id")),
            register_mark=require_enum(RegisterMark, register_mark, "register_mark") if register_mark else None,
        )
        validate_event(event)
        return event


def validate_event(event: AttendanceEvent) -> None:
    """Cross-field rules that a single field parser cannot see."""
    if not event.subject_user_id and not event.qr_token:
        raise ValidationError("subject_user_id or qr_token is required")
    if (event.captured_lat is None) != (event.captured_lng is None):
        raise ValidationError("captured_lat and captured_lng must be sent together")
    if event.source == EventSource.PWA_GEO and event.captured_lat is None:
        raise ValidationError("PWA_GEO events require a geolocation fix")
    if event.register_mark is not None and event.source != EventSource.MANUAL_REGISTER:
        raise ValidationError("register_mark is only valid on MANUAL_REGISTER events")
    if event.source == EventSource.MANUAL_REGISTER and event.register_mark is None:
        raise ValidationError("MANUAL_REGISTER events require register_mark")


@dataclass(frozen=True)
class EventOverride:
    """Audit record that supersedes the direction of one stored event.

    The event row itself is never rewritten; the newest override per event wins
    when the day is graded.
    """

    tenant_id: str
    event_id: int
    previous_event_type: EventType
    new_event_type: EventType
    reason: str
    overridden_by: Optional[str]
    overridden_at: datetime
    override_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "override_id": self.override_id,
            "tenant_id": self.tenant_id,
            "event_id": self.event_id,
            "previous_event_type": self.previous_event_type.value,
            "new_event_type": self.new_event_type.value,
            "reason": self.reason,
            "overridden_by": self.overridden_by,
            "overridden_at": self.overridden_at.isoformat(),
        }
