from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceStatus
from .base import DayWindow, StatusDecision, StatusStrategy


class UnknownStrategy(StatusStrategy):
    """A checkout without any check-in: presence cannot be classified."""

    def decide(self, *, check_in: Optional[datetime], check_out: Optional[datetime], window: DayWindow) -> StatusDecision:
        return StatusDecision(status=AttendanceStatus.UNKNOWN, note="checkout without check-in")
