from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..core.enums import SubjectType
from .model import Subject


class SubjectRepository(Protocol):
    def get(self, *, tenant_id: str, user_id: str) -> Optional[Subject]:
        raise NotImplementedError

    def get_by_pin_digest(self, *, tenant_id: str, pin_digest: str) -> Optional[Subject]:
        raise NotImplementedError

    def list_for_branch(
        self,
        *,
        tenant_id: str,
        branch_id: str,
        subject_type: Optional[SubjectType] = None,
    ) -> Sequence[Subject]:
        """Active subjects of a branch ordered by display name."""

        raise NotImplementedError

    def upsert(self, subject: Subject) -> None:
        raise NotImplementedError
