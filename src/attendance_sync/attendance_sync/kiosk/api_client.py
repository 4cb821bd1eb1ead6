from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

import requests

from ..common.http import TENANT_HEADER
from ..common.logging import get_logger
from ..core.constants import HTTP_TIMEOUT_SECONDS
from ..core.exceptions import RequestRejectedError, TransientNetworkError
from ..events.model import AttendanceEvent

logger = get_logger(__name__)


class KioskApiClient:
    """HTTP client for the attendance server, as seen from one kiosk.

    Network failures, timeouts and 5xx answers raise TransientNetworkError (retry later).
    4xx answers raise RequestRejectedError carrying the server's message.
    """

    def __init__(
        self,
        base_url: str,
        *,
        tenant_id: str,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({TENANT_HEADER: tenant_id})

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise TransientNetworkError(f"{method} {path}: {e}") from e

        if response.status_code >= 500:
            raise TransientNetworkError(f"{method} {path}: server error {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            raise RequestRejectedError(message or f"HTTP {response.status_code}", status_code=response.status_code)
        return data if isinstance(data, dict) else {}

    def register_device(
        self,
        *,
        branch_id: str,
        device_code: str,
        device_name: str,
        location_label: Optional[str] = None,
        scan_point_type: str = "GATE",
    ) -> dict:
        data = self._request(
            "POST",
            "/attendance/kiosk/devices",
            json={
                "branch_id": branch_id,
                "device_code": device_code,
                "device_name": device_name,
                "location_label": location_label,
                "scan_point_type": scan_point_type,
            },
        )
        return data.get("device") or {}

    def heartbeat(self, device_id: int) -> dict:
        return self._request("POST", f"/attendance/kiosk/devices/{int(device_id)}/heartbeat")

    def scan(
        self,
        *,
        qr_token: str,
        device_id: int,
        idempotency_key: str,
        captured_at: datetime,
    ) -> dict:
        return self._request(
            "POST",
            "/attendance/kiosk/scan",
            json={
                "qr_token": qr_token,
                "device_id": device_id,
                "idempotency_key": idempotency_key,
                "captured_at": captured_at.isoformat(),
            },
        )

    def push(self, events: Iterable[AttendanceEvent]) -> list[dict[str, Any]]:
        data = self._request("POST", "/sync/push", json={"events": [e.to_dict() for e in events]})
        results = data.get("results")
        return results if isinstance(results, list) else []

    def pull(self, *, branch_id: Optional[str] = None) -> dict:
        params = {"branch_id": branch_id} if branch_id else None
        return self._request("GET", "/sync/pull", params=params)
