from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...common.datetime_utils import minutes_between
from ...core.enums import AttendanceStatus
from .base import DayWindow, StatusDecision, StatusStrategy


class LateStrategy(StatusStrategy):
    """Check-in after start + grace."""

    def decide(self, *, check_in: Optional[datetime], check_out: Optional[datetime], window: DayWindow) -> StatusDecision:
        late = max(0, minutes_between(window.on_time_until, check_in)) if check_in else 0
        cutoff = window.late_cutoff
        if cutoff is not None and check_in is not None and check_in > cutoff:
            return StatusDecision(status=AttendanceStatus.LATE, note=f"{late} min late, after the late cutoff")
        return StatusDecision(status=AttendanceStatus.LATE, note=f"{late} min late")
