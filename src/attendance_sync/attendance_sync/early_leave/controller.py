from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import current_actor, current_tenant, json_body, tenant_required
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.early_leave_service

    @app.route("/attendance/early-leave", methods=["POST"], endpoint="request_early_leave")
    @tenant_required
    def request_early_leave():
        req = service.request(json_body(), tenant_id=current_tenant(), requested_by=current_actor())
        return jsonify({"status": "success", "request": req.to_dict()}), 201

    @app.route("/attendance/early-leave", methods=["GET"], endpoint="list_early_leave")
    @tenant_required
    def list_early_leave():
        rows = service.list_requests(
            tenant_id=current_tenant(),
            branch_id=request.args.get("branch_id") or None,
            status=request.args.get("status") or None,
            on_date=request.args.get("date") or None,
        )
        return jsonify({"status": "success", "requests": [r.to_dict() for r in rows]}), 200

    @app.route("/attendance/early-leave/<int:request_id>/approve", methods=["PATCH"], endpoint="approve_early_leave")
    @tenant_required
    def approve_early_leave(request_id: int):
        req = service.approve(request_id, tenant_id=current_tenant(), approved_by=current_actor())
        return jsonify({"status": "success", "request": req.to_dict()}), 200

    @app.route("/attendance/early-leave/<int:request_id>/reject", methods=["PATCH"], endpoint="reject_early_leave")
    @tenant_required
    def reject_early_leave(request_id: int):
        body = json_body()
        req = service.reject(
            request_id, tenant_id=current_tenant(), reason=body.get("reason"), rejected_by=current_actor()
        )
        return jsonify({"status": "success", "request": req.to_dict()}), 200

    @app.route("/attendance/early-leave/<int:request_id>/complete", methods=["PATCH"], endpoint="complete_early_leave")
    @tenant_required
    def complete_early_leave(request_id: int):
        body = json_body()
        req = service.complete(
            request_id, tenant_id=current_tenant(), checkout_event_key=body.get("checkout_event_key")
        )
        return jsonify({"status": "success", "request": req.to_dict()}), 200
