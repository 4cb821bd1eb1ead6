from __future__ import annotations

from enum import Enum


class SubjectType(str, Enum):
    """Who an attendance event is about."""

    LEARNER = "LEARNER"
    STAFF = "STAFF"


class EventType(str, Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"


class EventSource(str, Enum):
    """Capture surface that produced an event."""

    KIOSK_SCAN = "KIOSK_SCAN"
    PWA_GEO = "PWA_GEO"
    MANUAL_REGISTER = "MANUAL_REGISTER"
    SYSTEM_OVERRIDE = "SYSTEM_OVERRIDE"


class RegisterMark(str, Enum):
    """Mark taken in the class register (MANUAL_REGISTER events)."""

    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"


class AttendanceStatus(str, Enum):
    """Daily attendance status stored on a summary."""

    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
    EARLY_PICKUP = "EARLY_PICKUP"
    UNKNOWN = "UNKNOWN"


class SummaryFlag(str, Enum):
    """Exception flags, declared in display precedence (highest first)."""

    OVERRIDDEN = "overridden"
    REGISTER_CONFLICT = "register_conflict"
    MISSING_CHECKOUT = "missing_checkout"
    OUTSIDE_POLICY = "outside_policy"

    @property
    def precedence(self) -> int:
        return list(SummaryFlag).index(self)


class PushItemStatus(str, Enum):
    """Per-item answer of a sync push."""

    CREATED = "created"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


class ScanPointType(str, Enum):
    GATE = "GATE"
    RECEPTION = "RECEPTION"
    CLINIC = "CLINIC"
    AFTERCARE = "AFTERCARE"
    LIBRARY = "LIBRARY"
    BUS = "BUS"


class ScanOutcome(str, Enum):
    """Result kinds returned by the kiosk scan endpoint."""

    SUCCESS = "success"
    DUPLICATE = "duplicate"
    BLOCKED = "blocked"


class EarlyLeaveStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class KioskState(str, Enum):
    """Visual states of the kiosk capture loop."""

    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    EARLY_LEAVE = "early_leave"
    BLOCKED = "blocked"
    ERROR = "error"


class InputMode(str, Enum):
    HID = "HID"
    CAMERA = "CAMERA"
    PIN = "PIN"


class QueueItemStatus(str, Enum):
    PENDING = "pending"
    REJECTED = "rejected"


class SyncTrigger(str, Enum):
    RECONNECT = "reconnect"
    PERIODIC = "periodic"
    MANUAL = "manual"
