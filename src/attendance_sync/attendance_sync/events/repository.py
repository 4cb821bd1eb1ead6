from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional, Protocol, Sequence

from .model import AttendanceEvent, EventOverride


class EventRepository(Protocol):
    def insert_if_absent(self, event: AttendanceEvent, *, received_at: datetime) -> tuple[AttendanceEvent, bool]:
        """Store the event unless its idempotency key exists.

        Returns the stored event (the earlier one on a replay) and whether it was created.
        """

        raise NotImplementedError

    def get_by_key(self, idempotency_key: str) -> Optional[AttendanceEvent]:
        raise NotImplementedError

    def get_by_id(self, *, tenant_id: str, event_id: int) -> Optional[AttendanceEvent]:
        raise NotImplementedError

    def list_for_subject_day(self, *, tenant_id: str, subject_user_id: str, work_date: date) -> Sequence[AttendanceEvent]:
        """Events of one subject/day ordered by captured_at_device, then event_id."""

        raise NotImplementedError

    def list_for_branch_day(self, *, tenant_id: str, branch_id: str, work_date: date) -> Sequence[AttendanceEvent]:
        """Every event of a branch on one day, in the same order as list_for_subject_day."""

        raise NotImplementedError

    def list_subjects_for_branch_day(self, *, tenant_id: str, branch_id: str, work_date: date) -> Sequence[tuple[str, str]]:
        """Distinct (subject_type, subject_user_id) pairs with events that day."""

        raise NotImplementedError

    def add_override(self, override: EventOverride) -> EventOverride:
        raise NotImplementedError

    def latest_overrides(self, *, tenant_id: str, event_ids: Iterable[int]) -> dict[int, EventOverride]:
        """Newest override per event id; events without one are absent from the result."""

        raise NotImplementedError

    def list_overrides(self, *, tenant_id: str, event_id: int) -> Sequence[EventOverride]:
        """Override history of one event, oldest first."""

        raise NotImplementedError
