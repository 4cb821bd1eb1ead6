from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import SubjectType


@dataclass(frozen=True)
class Subject:
    """A learner or staff member that can be checked in at a branch."""

    user_id: str
    tenant_id: str
    branch_id: str
    subject_type: SubjectType
    display_name: str
    grade: Optional[str] = None
    class_name: Optional[str] = None
    pin_digest: Optional[str] = None
    block_reason: Optional[str] = None
    is_active: bool = True

    @property
    def is_blocked(self) -> bool:
        return bool(self.block_reason)
