from __future__ import annotations

import itertools
import secrets
import threading
from datetime import datetime


class IdempotencyKeyGenerator:
    """Mints one key per logical capture, before the first send attempt.

    ``<device_code>-<epoch ms hex>-<counter>-<random>``: unique across devices
    by prefix, and across restarts of the same device by the random suffix.
    """

    def __init__(self, device_code: str):
        if not device_code:
            raise ValueError("device_code is required")
        self._prefix = device_code
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def new_key(self, *, at: datetime | None = None) -> str:
        at = at or datetime.now()
        millis = int(at.timestamp() * 1000)
        with self._lock:
            seq = next(self._counter)
        return f"{self._prefix}-{millis:x}-{seq:x}-{secrets.token_hex(4)}"
