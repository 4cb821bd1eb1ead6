from __future__ import annotations

from typing import Any, Mapping, Optional

from ..common.logging import get_logger
from .model import AttendancePolicy
from .repository import PolicyRepository

logger = get_logger(__name__)


class PolicyService:
    def __init__(self, policies: PolicyRepository):
        self._policies = policies

    def get_effective(self, *, tenant_id: str, branch_id: Optional[str]) -> AttendancePolicy:
        """Branch policy, else the tenant-wide policy, else built-in defaults."""
        if branch_id:
            policy = self._policies.get_active(tenant_id=tenant_id, branch_id=branch_id)
            if policy:
                return policy

        policy = self._policies.get_active(tenant_id=tenant_id, branch_id=None)
        if policy:
            return policy
        return AttendancePolicy.default(tenant_id=tenant_id, branch_id=branch_id)

    def save(self, payload: Mapping[str, Any], *, tenant_id: str) -> AttendancePolicy:
        policy = AttendancePolicy.from_dict(payload, tenant_id=tenant_id)
        stored = self._policies.upsert(policy)
        logger.info("policy saved for tenant=%s branch=%s", tenant_id, stored.branch_id or "*")
        return stored
