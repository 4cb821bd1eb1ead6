from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import current_actor, current_tenant, json_body, tenant_required
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/attendance/exceptions", methods=["GET"], endpoint="list_exceptions")
    @tenant_required
    def list_exceptions():
        rows = container.review_service.list_outstanding(
            tenant_id=current_tenant(),
            branch_id=request.args.get("branch_id") or None,
            flag=request.args.get("flag") or None,
        )
        return jsonify({"status": "success", "exceptions": [s.to_dict() for s in rows]}), 200

    @app.route("/attendance/exceptions/<int:summary_id>/resolve", methods=["PATCH"], endpoint="resolve_exception")
    @tenant_required
    def resolve_exception(summary_id: int):
        body = json_body()
        summary = container.review_service.resolve(
            tenant_id=current_tenant(),
            summary_id=summary_id,
            reason=body.get("reason") or "",
            new_status=body.get("new_status") or "",
            resolved_by=current_actor(),
        )
        return jsonify({"status": "success", "summary": summary.to_dict()}), 200

    @app.route("/attendance/override/event/<int:event_id>", methods=["PATCH"], endpoint="override_event")
    @tenant_required
    def override_event(event_id: int):
        body = json_body()
        override, summary = container.review_service.override_event(
            tenant_id=current_tenant(),
            event_id=event_id,
            reason=body.get("reason") or "",
            new_event_type=body.get("new_event_type") or None,
            overridden_by=current_actor(),
        )
        return jsonify({"status": "success", "override": override.to_dict(), "summary": summary.to_dict()}), 200
