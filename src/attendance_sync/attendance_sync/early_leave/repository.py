from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import EarlyLeaveStatus
from .model import EarlyLeaveRequest


class EarlyLeaveRepository(Protocol):
    def create(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str],
        learner_user_id: str,
        leave_date: date,
        pickup_person_name: str,
        pickup_person_relation: str,
        reason: Optional[str],
        requested_by: Optional[str],
    ) -> EarlyLeaveRequest:
        """Store a new PENDING request."""

        raise NotImplementedError

    def get(self, *, tenant_id: str, request_id: int) -> Optional[EarlyLeaveRequest]:
        raise NotImplementedError

    def decide(
        self,
        *,
        tenant_id: str,
        request_id: int,
        status: EarlyLeaveStatus,
        decided_by: Optional[str],
        decided_at: datetime,
        rejection_reason: Optional[str] = None,
    ) -> bool:
        """Move a PENDING request to ``status``; False when it was no longer pending."""

        raise NotImplementedError

    def get_approved_for(self, *, tenant_id: str, learner_user_id: str, leave_date: date) -> Optional[EarlyLeaveRequest]:
        """Oldest still-open (APPROVED) request of the learner for the date."""

        raise NotImplementedError

    def mark_completed(self, *, tenant_id: str, request_id: int, event_key: str) -> bool:
        raise NotImplementedError

    def list_requests(
        self,
        *,
        tenant_id: str,
        branch_id: Optional[str] = None,
        status: Optional[EarlyLeaveStatus] = None,
        leave_date: Optional[date] = None,
        limit: int = 100,
    ) -> Sequence[EarlyLeaveRequest]:
        """Newest first."""

        raise NotImplementedError
