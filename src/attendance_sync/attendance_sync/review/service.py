from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..common.logging import get_logger
from ..common.validators import require_bounded, require_enum
from ..core.constants import MAX_REASON_LENGTH
from ..core.enums import AttendanceStatus, EventType, SummaryFlag
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..events.model import EventOverride
from ..events.repository import EventRepository
from ..summaries.model import AttendanceSummary
from ..summaries.repository import SummaryRepository
from ..summaries.service import SummaryService

logger = get_logger(__name__)


class ExceptionReviewService:
    """Human resolution of flagged attendance days.

    Resolution only changes which status is authoritative; raw events are never touched.
    """

    def __init__(self, summaries: SummaryRepository, events: EventRepository, summary_service: SummaryService):
        self._summaries = summaries
        self._events = events
        self._summary_service = summary_service

    def list_outstanding(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str] = None,
        flag: Optional[str] = None,
        limit: int = 200,
    ) -> list[AttendanceSummary]:
        flag_filter = require_enum(SummaryFlag, flag, "flag") if flag else None
        if flag_filter == SummaryFlag.OVERRIDDEN:
            raise ValidationError("overridden summaries are not outstanding exceptions")

        rows = self._summaries.list_exceptions(
            tenant_id=tenant_id, branch_id=branch_id, flag=flag_filter, limit=int(limit)
        )
        return [s for s in rows if s.is_exception]

    def resolve(
        self,
        *,
        tenant_id: str,
        summary_id: int,
        reason: str,
        new_status: str | AttendanceStatus,
        resolved_by: Optional[str] = None,
        now: datetime | None = None,
    ) -> AttendanceSummary:
        now = now or datetime.now()
        reason = require_bounded(reason, "reason", MAX_REASON_LENGTH)
        status = require_enum(AttendanceStatus, new_status, "new_status")

        summary = self._summaries.get_by_id(tenant_id=tenant_id, summary_id=int(summary_id))
        if not summary:
            raise NotFoundError("Attendance summary not found")
        if summary.flags.overridden:
            raise ConflictError("Exception already resolved")
        if not summary.flags.has_exception:
            raise ConflictError("Summary has no exception to resolve")

        ok = self._summaries.apply_override(
            tenant_id=tenant_id,
            summary_id=int(summary_id),
            new_status=status,
            reason=reason,
            resolved_by=resolved_by,
            resolved_at=now,
        )
        if not ok:
            raise ConflictError("Exception already resolved")

        logger.info(
            "exception %s resolved by %s: %s -> %s (%s)",
            summary_id,
            resolved_by or "-",
            summary.status.value,
            status.value,
            reason,
        )
        resolved = self._summaries.get_by_id(tenant_id=tenant_id, summary_id=int(summary_id))
        if resolved is None:
            raise NotFoundError("Attendance summary not found")
        return resolved

    def override_event(
        self,
        *,
        tenant_id: str,
        event_id: int,
        reason: str,
        new_event_type: str | EventType | None = None,
        overridden_by: Optional[str] = None,
        now: datetime | None = None,
    ) -> tuple[EventOverride, AttendanceSummary]:
        """Supersede the direction of one stored event and re-grade its day.

        Without ``new_event_type`` the override only records the reason against
        the event's current direction.
        """
        now = now or datetime.now()
        reason = require_bounded(reason, "reason", MAX_REASON_LENGTH)

        event = self._events.get_by_id(tenant_id=tenant_id, event_id=int(event_id))
        if not event:
            raise NotFoundError("Attendance event not found")
        if event.is_register_mark:
            raise ValidationError("Register marks are corrected by submitting the register again")

        history = self._events.list_overrides(tenant_id=tenant_id, event_id=int(event_id))
        current = history[-1].new_event_type if history else event.event_type
        target = require_enum(EventType, new_event_type, "new_event_type") if new_event_type else current

        override = self._events.add_override(
            EventOverride(
                tenant_id=tenant_id,
                event_id=int(event_id),
                previous_event_type=current,
                new_event_type=target,
                reason=reason,
                overridden_by=overridden_by,
                overridden_at=now,
            )
        )
        logger.info(
            "event %s overridden by %s: %s -> %s (%s)",
            event_id,
            overridden_by or "-",
            current.value,
            target.value,
            reason,
        )
        summary = self._summary_service.recompute_for_event(event, now=now)
        return override, summary
