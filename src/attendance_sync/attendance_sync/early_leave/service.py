from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import parse_iso_date
from ..common.logging import get_logger
from ..common.validators import optional_str, require_bounded, require_enum, require_non_empty
from ..core.constants import MAX_REASON_LENGTH
from ..core.enums import EarlyLeaveStatus, SubjectType
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..subjects.service import SubjectService
from .model import EarlyLeaveRequest
from .repository import EarlyLeaveRepository

logger = get_logger(__name__)


class EarlyLeaveService:
    """Early pickup requests: reception files them, an admin decides, the gate consumes them."""

    def __init__(self, requests: EarlyLeaveRepository, subjects: SubjectService):
        self._requests = requests
        self._subjects = subjects

    def request(
        self,
        payload: Mapping[str, Any],
        *,
        tenant_id: str,
        requested_by: Optional[str] = None,
    ) -> EarlyLeaveRequest:
        learner_id = require_non_empty(payload.get("learner_user_id"), "learner_user_id")
        learner = self._subjects.get(tenant_id=tenant_id, user_id=learner_id)
        if learner.subject_type != SubjectType.LEARNER:
            raise ValidationError("Early leave applies to learners only")

        reason = optional_str(payload.get("reason"))
        if reason and len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"reason must be at most {MAX_REASON_LENGTH} characters")

        created = self._requests.create(
            tenant_id=tenant_id,
            branch_id=learner.branch_id,
            learner_user_id=learner.user_id,
            leave_date=parse_iso_date(require_non_empty(payload.get("date"), "date")),
            pickup_person_name=require_non_empty(payload.get("pickup_person_name"), "pickup_person_name"),
            pickup_person_relation=require_non_empty(payload.get("pickup_person_relation"), "pickup_person_relation"),
            reason=reason,
            requested_by=requested_by,
        )
        logger.info(
            "early leave %s requested for %s on %s by %s",
            created.request_id,
            created.learner_user_id,
            created.leave_date.isoformat(),
            requested_by or "-",
        )
        return created

    def _get(self, *, tenant_id: str, request_id: int) -> EarlyLeaveRequest:
        req = self._requests.get(tenant_id=tenant_id, request_id=int(request_id))
        if not req:
            raise NotFoundError("Early leave request not found")
        return req

    def _decide(
        self,
        *,
        tenant_id: str,
        request_id: int,
        status: EarlyLeaveStatus,
        decided_by: Optional[str],
        now: datetime,
        rejection_reason: Optional[str] = None,
    ) -> EarlyLeaveRequest:
        req = self._get(tenant_id=tenant_id, request_id=request_id)
        if req.status != EarlyLeaveStatus.PENDING:
            raise ConflictError(f"Request is already {req.status.value}")

        decided = self._requests.decide(
            tenant_id=tenant_id,
            request_id=int(request_id),
            status=status,
            decided_by=decided_by,
            decided_at=now,
            rejection_reason=rejection_reason,
        )
        if not decided:
            raise ConflictError("Request was decided concurrently")

        logger.info("early leave %s %s by %s", request_id, status.value.lower(), decided_by or "-")
        return self._get(tenant_id=tenant_id, request_id=request_id)

    def approve(
        self, request_id: int, *, tenant_id: str, approved_by: Optional[str] = None, now: datetime | None = None
    ) -> EarlyLeaveRequest:
        return self._decide(
            tenant_id=tenant_id,
            request_id=request_id,
            status=EarlyLeaveStatus.APPROVED,
            decided_by=approved_by,
            now=now or datetime.now(),
        )

    def reject(
        self,
        request_id: int,
        *,
        tenant_id: str,
        reason: Optional[str],
        rejected_by: Optional[str] = None,
        now: datetime | None = None,
    ) -> EarlyLeaveRequest:
        return self._decide(
            tenant_id=tenant_id,
            request_id=request_id,
            status=EarlyLeaveStatus.REJECTED,
            decided_by=rejected_by,
            now=now or datetime.now(),
            rejection_reason=require_bounded(reason, "reason", MAX_REASON_LENGTH),
        )

    def complete(self, request_id: int, *, tenant_id: str, checkout_event_key: Optional[str]) -> EarlyLeaveRequest:
        """Operator links a checkout to an approved request the gate did not close."""
        event_key = require_non_empty(checkout_event_key, "checkout_event_key")
        req = self._get(tenant_id=tenant_id, request_id=request_id)
        if req.status != EarlyLeaveStatus.APPROVED:
            raise ConflictError("Request must be approved before completing")
        if not self._requests.mark_completed(tenant_id=tenant_id, request_id=req.request_id, event_key=event_key):
            raise ConflictError("Request was completed concurrently")
        return self._get(tenant_id=tenant_id, request_id=request_id)

    def list_requests(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str] = None,
        status: Optional[str] = None,
        on_date: Optional[str] = None,
    ) -> list[EarlyLeaveRequest]:
        return list(
            self._requests.list_requests(
                tenant_id=tenant_id,
                branch_id=branch_id,
                status=require_enum(EarlyLeaveStatus, status, "status") if status else None,
                leave_date=parse_iso_date(on_date) if on_date else None,
            )
        )

    def claim_for_checkout(
        self, *, tenant_id: str, learner_user_id: str, on_date: date, event_key: str
    ) -> Optional[EarlyLeaveRequest]:
        """Attach the learner's approved request (if any) to a checkout and close it."""
        request = self._requests.get_approved_for(tenant_id=tenant_id, learner_user_id=learner_user_id, leave_date=on_date)
        if not request:
            return None
        if not self._requests.mark_completed(tenant_id=tenant_id, request_id=request.request_id, event_key=event_key):
            return None
        return request
