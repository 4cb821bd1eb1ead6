from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceStatus
from .base import DayWindow, StatusDecision, StatusStrategy


class AbsentStrategy(StatusStrategy):
    """No counted events for the day."""

    def decide(self, *, check_in: Optional[datetime], check_out: Optional[datetime], window: DayWindow) -> StatusDecision:
        return StatusDecision(status=AttendanceStatus.ABSENT)
