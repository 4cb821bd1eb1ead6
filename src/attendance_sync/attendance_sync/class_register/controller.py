from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import current_actor, current_tenant, json_body, tenant_required
from ..common.validators import require_non_empty
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.class_register_service

    @app.route("/attendance/register", methods=["POST"], endpoint="submit_register")
    @tenant_required
    def submit_register():
        saved = service.submit(json_body(), tenant_id=current_tenant(), teacher_user_id=current_actor())
        return jsonify({"status": "success", "register": saved.to_dict()}), 200

    @app.route("/attendance/register", methods=["GET"], endpoint="list_registers")
    @tenant_required
    def list_registers():
        rows = service.list_for_branch(
            tenant_id=current_tenant(),
            branch_id=require_non_empty(request.args.get("branch_id"), "branch_id"),
            on_date=request.args.get("date") or None,
        )
        return jsonify({"status": "success", "registers": [r.to_dict() for r in rows]}), 200

    @app.route("/attendance/register/<class_id>/<register_date>", methods=["GET"], endpoint="get_register")
    @tenant_required
    def get_register(class_id: str, register_date: str):
        found = service.get(tenant_id=current_tenant(), class_id=class_id, register_date=register_date)
        return jsonify({"status": "success", "register": found.to_dict()}), 200

    @app.route(
        "/attendance/register/<class_id>/<register_date>/finalize", methods=["POST"], endpoint="finalize_register"
    )
    @tenant_required
    def finalize_register(class_id: str, register_date: str):
        final = service.finalize(tenant_id=current_tenant(), class_id=class_id, register_date=register_date)
        return jsonify({"status": "success", "register": final.to_dict()}), 200
