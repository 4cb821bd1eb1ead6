from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ...core.enums import AttendanceStatus


@dataclass(frozen=True)
class StatusDecision:
    status: AttendanceStatus
    note: Optional[str] = None


@dataclass(frozen=True)
class DayWindow:
    """Working window of one subject type on one date, resolved from a policy."""

    start: datetime
    end: datetime
    grace_minutes: int
    late_threshold_minutes: int = 0

    @property
    def on_time_until(self) -> datetime:
        return self.start + timedelta(minutes=self.grace_minutes)

    @property
    def late_cutoff(self) -> Optional[datetime]:
        """Last acceptable late arrival; None when no cutoff is configured."""
        if self.late_threshold_minutes <= 0:
            return None
        return self.on_time_until + timedelta(minutes=self.late_threshold_minutes)

    @property
    def early_pickup_before(self) -> datetime:
        return self.end - timedelta(minutes=self.grace_minutes)


class StatusStrategy(ABC):
    """Strategy Pattern: encapsulate how a day's status is decided."""

    @abstractmethod
    def decide(self, *, check_in: Optional[datetime], check_out: Optional[datetime], window: DayWindow) -> StatusDecision:
        raise NotImplementedError
