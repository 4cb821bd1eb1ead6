from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Mapping, Optional

from ..common.datetime_utils import parse_iso_date
from ..common.logging import get_logger
from ..common.validators import require_bounded, require_non_empty
from ..core.enums import EventSource, EventType, SubjectType
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..events.model import AttendanceEvent
from ..events.service import EventService
from ..subjects.service import SubjectService
from ..summaries.service import SummaryService
from .model import ClassRegister, RegisterEntry
from .repository import ClassRegisterRepository

logger = get_logger(__name__)

_LATE_SUBMISSION_TIME = time(23, 59, 59)
# Keeps register event keys inside the idempotency key column.
MAX_CLASS_ID_LENGTH = 32


class ClassRegisterService:
    """Teacher registers: each mark becomes a MANUAL_REGISTER event graded with the gate scans."""

    def __init__(
        self,
        registers: ClassRegisterRepository,
        subjects: SubjectService,
        events: EventService,
        summaries: SummaryService,
    ):
        self._registers = registers
        self._subjects = subjects
        self._events = events
        self._summaries = summaries

    def submit(
        self,
        payload: Mapping[str, Any],
        *,
        tenant_id: str,
        teacher_user_id: Optional[str] = None,
        now: datetime | None = None,
    ) -> ClassRegister:
        now = now or datetime.now()
        branch_id = require_non_empty(payload.get("branch_id"), "branch_id")
        class_id = require_bounded(payload.get("class_id"), "class_id", MAX_CLASS_ID_LENGTH)
        register_date = parse_iso_date(require_non_empty(payload.get("date"), "date"))
        if register_date > now.date():
            raise ValidationError("Register date cannot be in the future")

        is_final = payload.get("is_final", False)
        if not isinstance(is_final, bool):
            raise ValidationError("is_final must be true or false")

        entries = self._parse_marks(payload.get("marks"), tenant_id=tenant_id, branch_id=branch_id)

        existing = self._registers.get(tenant_id=tenant_id, class_id=class_id, register_date=register_date)
        if existing and existing.is_final:
            raise ConflictError("Register already finalized for this date")

        saved = self._registers.save_submission(
            ClassRegister(
                tenant_id=tenant_id,
                branch_id=branch_id,
                class_id=class_id,
                register_date=register_date,
                teacher_user_id=teacher_user_id,
                marks=entries,
                submitted_at=now,
                is_final=is_final,
                finalized_at=now if is_final else None,
            )
        )
        if saved is None:
            raise ConflictError("Register already finalized for this date")

        # Same-day marks carry the submission time; a late register sorts after the day's scans.
        captured_at = now if register_date == now.date() else datetime.combine(register_date, _LATE_SUBMISSION_TIME)
        for entry in saved.marks:
            event = AttendanceEvent(
                idempotency_key=saved.event_key(entry.learner_user_id),
                tenant_id=tenant_id,
                branch_id=branch_id,
                subject_type=SubjectType.LEARNER,
                subject_user_id=entry.learner_user_id,
                event_type=EventType.CHECK_IN,
                source=EventSource.MANUAL_REGISTER,
                captured_at_device=captured_at,
                register_mark=entry.mark,
            )
            stored = self._events.record(event, now=now).event
            self._summaries.recompute_for_event(stored, now=now)

        logger.info(
            "register %s/%s %s r%d submitted by %s: %d marks%s",
            branch_id,
            class_id,
            register_date.isoformat(),
            saved.revision,
            teacher_user_id or "-",
            len(saved.marks),
            " (final)" if saved.is_final else "",
        )
        return saved

    def _parse_marks(self, raw: Any, *, tenant_id: str, branch_id: str) -> tuple[RegisterEntry, ...]:
        if not isinstance(raw, list) or not raw:
            raise ValidationError("marks must be a non-empty list")

        entries = tuple(RegisterEntry.from_dict(m) for m in raw)
        seen: set[str] = set()
        for entry in entries:
            if entry.learner_user_id in seen:
                raise ValidationError(f"Learner {entry.learner_user_id} is marked twice")
            seen.add(entry.learner_user_id)

            try:
                learner = self._subjects.get(tenant_id=tenant_id, user_id=entry.learner_user_id)
            except NotFoundError:
                raise ValidationError(f"Unknown learner {entry.learner_user_id}") from None
            if learner.subject_type != SubjectType.LEARNER:
                raise ValidationError(f"{entry.learner_user_id} is not a learner")
            if learner.branch_id != branch_id:
                raise ValidationError(f"Learner {entry.learner_user_id} is not enrolled at this branch")
        return entries

    def get(self, *, tenant_id: str, class_id: str, register_date: date | str) -> ClassRegister:
        if isinstance(register_date, str):
            register_date = parse_iso_date(register_date)
        register = self._registers.get(tenant_id=tenant_id, class_id=class_id, register_date=register_date)
        if not register:
            raise NotFoundError("Register not found")
        return register

    def finalize(
        self, *, tenant_id: str, class_id: str, register_date: date | str, now: datetime | None = None
    ) -> ClassRegister:
        now = now or datetime.now()
        register = self.get(tenant_id=tenant_id, class_id=class_id, register_date=register_date)
        if register.is_final or not self._registers.finalize(
            tenant_id=tenant_id, class_id=class_id, register_date=register.register_date, finalized_at=now
        ):
            raise ConflictError("Register already finalized for this date")

        logger.info("register %s %s finalized", class_id, register.register_date.isoformat())
        return self.get(tenant_id=tenant_id, class_id=class_id, register_date=register.register_date)

    def list_for_branch(self, *, tenant_id: str, branch_id: str, on_date: Optional[str] = None) -> list[ClassRegister]:
        register_date = parse_iso_date(on_date) if on_date else datetime.now().date()
        return list(self._registers.list_for_branch(tenant_id=tenant_id, branch_id=branch_id, register_date=register_date))
