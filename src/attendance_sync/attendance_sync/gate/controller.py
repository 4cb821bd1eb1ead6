from __future__ import annotations

import io

from flask import Flask, jsonify, request, send_file

from ..common.datetime_utils import parse_iso_datetime
from ..common.http import current_tenant, json_body, tenant_required
from ..core.exceptions import ValidationError
from ..container import Container


def register(app: Flask, container: Container) -> None:
    def _scan(body: dict):
        captured_at = body.get("captured_at")
        result = container.scan_service.scan(
            tenant_id=current_tenant(),
            qr_token=str(body.get("qr_token") or ""),
            device_id=body.get("device_id"),
            idempotency_key=(body.get("idempotency_key") or None),
            captured_at=parse_iso_datetime(captured_at) if captured_at else None,
        )
        return jsonify(result.to_dict()), 200

    @app.route("/attendance/kiosk/scan", methods=["POST"], endpoint="kiosk_scan")
    @tenant_required
    def kiosk_scan():
        """Online kiosk scan; the kiosk falls back to its local queue when this is unreachable."""
        return _scan(json_body())

    @app.route("/attendance/kiosk/scan/image", methods=["POST"], endpoint="kiosk_scan_image")
    @tenant_required
    def kiosk_scan_image():
        """Accept a camera frame, decode the QR code and run the same scan."""
        if "image" not in request.files:
            raise ValidationError("Missing image file")

        # pyzbar needs the native zbar library; loaded on first camera upload.
        from ..tokens.decoder import decode_qr_upload

        values = decode_qr_upload(request.files["image"].stream)
        if not values:
            raise ValidationError("No QR code found in image")

        return _scan({"qr_token": values[0], "device_id": request.form.get("device_id")})

    @app.route("/attendance/kiosk/devices", methods=["POST"], endpoint="kiosk_register_device")
    @tenant_required
    def kiosk_register_device():
        device = container.device_service.register(json_body(), tenant_id=current_tenant())
        return jsonify({"status": "success", "device": device.to_dict()}), 200

    @app.route("/attendance/kiosk/devices", methods=["GET"], endpoint="kiosk_list_devices")
    @tenant_required
    def kiosk_list_devices():
        devices = container.device_service.list_devices(
            tenant_id=current_tenant(), branch_id=request.args.get("branch_id") or None
        )
        return jsonify({"status": "success", "devices": [d.to_dict() for d in devices]}), 200

    @app.route("/attendance/kiosk/devices/<int:device_id>/heartbeat", methods=["POST"], endpoint="kiosk_heartbeat")
    @tenant_required
    def kiosk_heartbeat(device_id: int):
        device = container.device_service.heartbeat(tenant_id=current_tenant(), device_id=device_id)
        return jsonify({"status": "success", "device": device.to_dict()}), 200

    @app.route(
        "/attendance/kiosk/devices/<int:device_id>/deactivate", methods=["POST"], endpoint="kiosk_deactivate_device"
    )
    @tenant_required
    def kiosk_deactivate_device(device_id: int):
        device = container.device_service.deactivate(tenant_id=current_tenant(), device_id=device_id)
        return jsonify({"status": "success", "device": device.to_dict()}), 200

    @app.route("/attendance/learners/<user_id>/qr.png", methods=["GET"], endpoint="learner_qr_image")
    @tenant_required
    def learner_qr_image(user_id: str):
        png = container.subject_service.badge_png(tenant_id=current_tenant(), user_id=user_id)
        return send_file(io.BytesIO(png), mimetype="image/png")
