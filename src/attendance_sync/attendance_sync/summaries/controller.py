from __future__ import annotations

from datetime import date

from flask import Flask, jsonify, request

from ..common.datetime_utils import now_local, parse_iso_date
from ..common.http import current_tenant, json_body, tenant_required
from ..common.validators import require_non_empty
from ..container import Container


def register(app: Flask, container: Container) -> None:
    def _date_arg(value: str | None) -> date:
        return parse_iso_date(value) if value else now_local().date()

    @app.route("/attendance/learner/branch", methods=["GET"], endpoint="learner_branch_summary")
    @tenant_required
    def learner_branch_summary():
        branch_id = require_non_empty(request.args.get("branch_id"), "branch_id")
        data = container.summary_service.learner_branch_view(
            tenant_id=current_tenant(), branch_id=branch_id, work_date=_date_arg(request.args.get("date"))
        )
        return jsonify({"status": "success", **data}), 200

    @app.route("/attendance/staff/today", methods=["GET"], endpoint="staff_today_summary")
    @tenant_required
    def staff_today_summary():
        branch_id = require_non_empty(request.args.get("branch_id"), "branch_id")
        data = container.summary_service.staff_today(tenant_id=current_tenant(), branch_id=branch_id, now=now_local())
        return jsonify({"status": "success", **data}), 200

    @app.route("/attendance/rollup", methods=["POST"], endpoint="attendance_rollup")
    @tenant_required
    def attendance_rollup():
        body = json_body()
        branch_id = require_non_empty(body.get("branch_id"), "branch_id")
        summaries = container.summary_service.rollup(
            tenant_id=current_tenant(), branch_id=branch_id, work_date=_date_arg(body.get("date")), now=now_local()
        )
        return jsonify(
            {
                "status": "success",
                "computed": len(summaries),
                "exceptions": sum(1 for s in summaries if s.is_exception),
            }
        ), 200

    @app.route("/attendance/rollup/weekly", methods=["GET"], endpoint="attendance_weekly_rollup")
    @tenant_required
    def attendance_weekly_rollup():
        branch_id = require_non_empty(request.args.get("branch_id"), "branch_id")
        weekly = container.summary_service.weekly_rollup(
            tenant_id=current_tenant(), branch_id=branch_id, week_of=_date_arg(request.args.get("week_of"))
        )
        return jsonify({"status": "success", "subjects": [w.to_dict() for w in weekly]}), 200
