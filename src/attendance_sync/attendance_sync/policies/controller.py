from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.datetime_utils import now_local
from ..common.http import current_tenant, json_body, tenant_required
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/attendance/policy", methods=["GET"], endpoint="get_policy")
    @tenant_required
    def get_policy():
        policy = container.policy_service.get_effective(
            tenant_id=current_tenant(), branch_id=request.args.get("branch_id") or None
        )
        return jsonify({"status": "success", "policy": policy.to_dict(), "is_default": policy.is_default}), 200

    @app.route("/attendance/policy", methods=["PUT"], endpoint="save_policy")
    @tenant_required
    def save_policy():
        policy = container.policy_service.save(json_body(), tenant_id=current_tenant())

        # Only today's already-graded days move; earlier days need an explicit roll-up.
        regraded = 0
        if policy.branch_id:
            now = now_local()
            regraded = len(
                container.summary_service.recompute_existing(
                    tenant_id=current_tenant(), branch_id=policy.branch_id, work_date=now.date(), now=now
                )
            )
        return jsonify({"status": "success", "policy": policy.to_dict(), "regraded": regraded}), 200
