from __future__ import annotations

from datetime import time

# Built-in policy used when neither the branch nor the tenant configured one.
DEFAULT_WORKING_DAYS = ("MON", "TUE", "WED", "THU", "FRI")
DEFAULT_SCHOOL_START = time(7, 30)
DEFAULT_SCHOOL_END = time(14, 0)
DEFAULT_STAFF_SHIFT_START = time(7, 0)
DEFAULT_STAFF_SHIFT_END = time(15, 30)
DEFAULT_GRACE_MINUTES = 10
DEFAULT_OVERTIME_GRACE_MINUTES = 15
DEFAULT_LATE_THRESHOLD_MINUTES = 0
DEFAULT_MISSING_CHECKOUT_CUTOFF_MINUTES = 480
DEFAULT_ANTI_PASSBACK_MINUTES = 5

WEEKDAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

PIN_TOKEN_PREFIX = "PIN-"
PIN_MIN_DIGITS = 4
PIN_MAX_DIGITS = 8

DISPLAY_RESET_SECONDS = 5.0
HTTP_TIMEOUT_SECONDS = 10.0

MAX_REASON_LENGTH = 500
