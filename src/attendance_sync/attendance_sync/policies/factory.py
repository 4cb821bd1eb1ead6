from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .strategies.absent_strategy import AbsentStrategy
from .strategies.base import DayWindow, StatusStrategy
from .strategies.early_pickup_strategy import EarlyPickupStrategy
from .strategies.late_strategy import LateStrategy
from .strategies.present_strategy import PresentStrategy
from .strategies.unknown_strategy import UnknownStrategy


@dataclass
class StatusStrategyFactory:
    """Factory Pattern: choose the status strategy for a day's attendance window."""

    def for_day(self, *, check_in: Optional[datetime], check_out: Optional[datetime], window: DayWindow) -> StatusStrategy:
        if check_in is None:
            return UnknownStrategy() if check_out is not None else AbsentStrategy()

        if check_out is not None and check_out < window.early_pickup_before:
            return EarlyPickupStrategy()

        if check_in <= window.on_time_until:
            return PresentStrategy()
        return LateStrategy()
