from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import current_tenant, json_body, tenant_required
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/sync/push", methods=["POST"], endpoint="sync_push")
    @tenant_required
    def sync_push():
        """Per-item results: created | duplicate | rejected (with reason)."""
        return jsonify(container.sync_service.push(json_body(), tenant_id=current_tenant())), 200

    @app.route("/sync/pull", methods=["GET"], endpoint="sync_pull")
    @tenant_required
    def sync_pull():
        data = container.sync_service.pull(tenant_id=current_tenant(), branch_id=request.args.get("branch_id") or None)
        return jsonify(data), 200
