from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from .model import ClassRegister


class ClassRegisterRepository(Protocol):
    def get(self, *, tenant_id: str, class_id: str, register_date: date) -> Optional[ClassRegister]:
        raise NotImplementedError

    def save_submission(self, register: ClassRegister) -> Optional[ClassRegister]:
        """Insert or replace the marks of a class/date, bumping the revision.

        Returns None, leaving the stored row alone, when the register is already final.
        """

        raise NotImplementedError

    def finalize(self, *, tenant_id: str, class_id: str, register_date: date, finalized_at: datetime) -> bool:
        """Lock a register that is not final yet; False when missing or already final."""

        raise NotImplementedError

    def list_for_branch(self, *, tenant_id: str, branch_id: str, register_date: date) -> Sequence[ClassRegister]:
        raise NotImplementedError
