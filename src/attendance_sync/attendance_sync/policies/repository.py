from __future__ import annotations

from typing import Optional, Protocol

from .model import AttendancePolicy


class PolicyRepository(Protocol):
    def get_active(self, *, tenant_id: str, branch_id: Optional[str]) -> Optional[AttendancePolicy]:
        """Active policy for exactly this scope (branch_id None = tenant-wide)."""

        raise NotImplementedError

    def upsert(self, policy: AttendancePolicy) -> AttendancePolicy:
        raise NotImplementedError
