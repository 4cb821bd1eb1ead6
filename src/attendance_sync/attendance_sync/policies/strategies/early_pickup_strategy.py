from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...common.datetime_utils import minutes_between
from ...core.enums import AttendanceStatus
from .base import DayWindow, StatusDecision, StatusStrategy


class EarlyPickupStrategy(StatusStrategy):
    """Checkout materially before the end of the day (more than the grace period early)."""

    def decide(self, *, check_in: Optional[datetime], check_out: Optional[datetime], window: DayWindow) -> StatusDecision:
        early = max(0, minutes_between(check_out, window.end)) if check_out else 0
        return StatusDecision(status=AttendanceStatus.EARLY_PICKUP, note=f"left {early} min early")
