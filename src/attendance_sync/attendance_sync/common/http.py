from __future__ import annotations

from functools import wraps
from typing import Any, Optional

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from ..core.exceptions import ConflictError, DomainError, NotFoundError, ValidationError
from .logging import get_logger

logger = get_logger(__name__)

TENANT_HEADER = "X-Tenant-ID"
ACTOR_HEADER = "X-User-ID"


def error_response(message: str, status_code: int):
    return jsonify({"status": "error", "message": message}), status_code


def tenant_required(view):
    """Tenant comes from the upstream auth layer as a header; refuse requests without it."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        tenant_id = (request.headers.get(TENANT_HEADER) or "").strip()
        if not tenant_id:
            return error_response(f"Missing {TENANT_HEADER} header", 400)
        g.tenant_id = tenant_id
        g.actor_id = (request.headers.get(ACTOR_HEADER) or "").strip() or None
        return view(*args, **kwargs)

    return wrapper


def current_tenant() -> str:
    return g.tenant_id


def current_actor() -> Optional[str]:
    return g.get("actor_id")


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def _validation(e: ValidationError):
        return error_response(str(e), 400)

    @app.errorhandler(NotFoundError)
    def _not_found(e: NotFoundError):
        return error_response(str(e), 404)

    @app.errorhandler(ConflictError)
    def _conflict(e: ConflictError):
        return error_response(str(e), 409)

    @app.errorhandler(DomainError)
    def _domain(e: DomainError):
        return error_response(str(e), 400)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return error_response(e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.path)
        return error_response("Internal server error", 500)
