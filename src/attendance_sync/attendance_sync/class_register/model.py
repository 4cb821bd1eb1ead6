from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional

from ..common.validators import optional_str, require_enum, require_non_empty
from ..core.enums import RegisterMark
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class RegisterEntry:
    learner_user_id: str
    mark: RegisterMark
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return {"learner_user_id": self.learner_user_id, "status": self.mark.value, "notes": self.notes}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RegisterEntry":
        if not isinstance(data, Mapping):
            raise ValidationError("each mark must be an object")
        return cls(
            learner_user_id=require_non_empty(data.get("learner_user_id"), "learner_user_id"),
            mark=require_enum(RegisterMark, data.get("status"), "status"),
            notes=optional_str(data.get("notes")),
        )


@dataclass(frozen=True)
class ClassRegister:
    """A teacher's marks for one class on one date.

    Each submission bumps ``revision``; once ``is_final`` is set the register is read-only.
    """

    tenant_id: str
    branch_id: str
    class_id: str
    register_date: date
    teacher_user_id: Optional[str]
    marks: tuple[RegisterEntry, ...]
    submitted_at: datetime
    revision: int = 1
    is_final: bool = False
    finalized_at: Optional[datetime] = None
    register_id: Optional[int] = None

    def event_key(self, learner_user_id: str) -> str:
        return f"register-{self.class_id}-{self.register_date.isoformat()}-{learner_user_id}-r{self.revision}"

    def to_dict(self) -> dict:
        return {
            "register_id": self.register_id,
            "branch_id": self.branch_id,
            "class_id": self.class_id,
            "date": self.register_date.isoformat(),
            "teacher_user_id": self.teacher_user_id,
            "marks": [m.to_dict() for m in self.marks],
            "revision": self.revision,
            "is_final": self.is_final,
            "submitted_at": self.submitted_at.isoformat(),
            "finalized_at": self.finalized_at.isoformat() if self.finalized_at else None,
        }
