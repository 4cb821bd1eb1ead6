from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..core.enums import EarlyLeaveStatus


@dataclass(frozen=True)
class EarlyLeaveRequest:
    """Permission for a learner to be picked up before the end of the day.

    PENDING -> APPROVED | REJECTED; an APPROVED request becomes COMPLETED when the
    learner's checkout is scanned (or an operator links the checkout by hand).
    """

    request_id: int
    tenant_id: str
    learner_user_id: str
    leave_date: date
    pickup_person_name: str
    pickup_person_relation: str
    status: EarlyLeaveStatus
    branch_id: Optional[str] = None
    reason: Optional[str] = None
    requested_by: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    completed_event_key: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def approved_by(self) -> Optional[str]:
        if self.status in (EarlyLeaveStatus.APPROVED, EarlyLeaveStatus.COMPLETED):
            return self.decided_by
        return None

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "branch_id": self.branch_id,
            "learner_user_id": self.learner_user_id,
            "leave_date": self.leave_date.isoformat(),
            "pickup_person_name": self.pickup_person_name,
            "pickup_person_relation": self.pickup_person_relation,
            "status": self.status.value,
            "reason": self.reason,
            "requested_by": self.requested_by,
            "approved_by": self.approved_by,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "rejection_reason": self.rejection_reason,
            "completed_event_key": self.completed_event_key,
        }
