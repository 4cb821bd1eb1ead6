from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..core.constants import PIN_MAX_DIGITS, PIN_MIN_DIGITS, PIN_TOKEN_PREFIX
from ..core.enums import InputMode


@dataclass(frozen=True)
class ScanToken:
    value: str
    mode: InputMode


class CaptureStrategy(ABC):
    """One kiosk input mode. Feeds raw input and emits complete tokens."""

    mode: InputMode

    @abstractmethod
    def cancel(self) -> None:
        """Drop any partial input (mode switch or reset)."""
        raise NotImplementedError


class KeyboardWedgeCapture(CaptureStrategy):
    """USB/Bluetooth scanners that type the code followed by Enter.

    Scanners without a terminator are flushed after ``idle_gap`` of silence.
    """

    mode = InputMode.HID

    def __init__(self, *, min_length: int = 4, idle_gap: timedelta = timedelta(milliseconds=150)):
        self._min_length = min_length
        self._idle_gap = idle_gap
        self._buffer: list[str] = []
        self._last_key_at: Optional[datetime] = None

    def _flush(self) -> Optional[ScanToken]:
        value = "".join(self._buffer).strip()
        self.cancel()
        if len(value) < self._min_length:
            return None
        return ScanToken(value=value, mode=self.mode)

    def on_key(self, ch: str, *, at: datetime | None = None) -> Optional[ScanToken]:
        """Feed one character; returns a token when a code completes.

        A key arriving after the idle gap first closes the previous code, so two
        unterminated scans back to back never merge.
        """
        at = at or datetime.now()
        stale = self.poll(at)
        if ch in ("\r", "\n"):
            return stale or self._flush()
        self._buffer.append(ch)
        self._last_key_at = at
        return stale

    def poll(self, now: datetime | None = None) -> Optional[ScanToken]:
        now = now or datetime.now()
        if self._buffer and self._last_key_at and now - self._last_key_at >= self._idle_gap:
            return self._flush()
        return None

    def cancel(self) -> None:
        self._buffer.clear()
        self._last_key_at = None


class CameraCapture(CaptureStrategy):
    """Decodes QR codes from camera frames; the same code held in view emits once per cooldown."""

    mode = InputMode.CAMERA

    def __init__(
        self,
        *,
        decoder: Optional[Callable[[object], list[str]]] = None,
        cooldown: timedelta = timedelta(seconds=3),
    ):
        self._decoder = decoder
        self._cooldown = cooldown
        self._last_value: Optional[str] = None
        self._last_at: Optional[datetime] = None

    def on_frame(self, image, *, at: datetime | None = None) -> Optional[ScanToken]:
        at = at or datetime.now()
        if self._decoder is None:
            # pyzbar loads the native zbar library on import; only camera kiosks need it.
            from ..tokens.decoder import decode_qr_values

            self._decoder = decode_qr_values
        values = self._decoder(image)
        if not values:
            return None

        value = values[0]
        if value == self._last_value and self._last_at and at - self._last_at < self._cooldown:
            return None
        self._last_value = value
        self._last_at = at
        return ScanToken(value=value, mode=self.mode)

    def cancel(self) -> None:
        self._last_value = None
        self._last_at = None


class PinPadCapture(CaptureStrategy):
    """On-screen digit pad. Submits at the maximum length or on explicit submit."""

    mode = InputMode.PIN

    def __init__(self):
        self._digits: list[str] = []

    @property
    def entered(self) -> int:
        return len(self._digits)

    def press(self, digit: str) -> Optional[ScanToken]:
        if len(digit) != 1 or not digit.isdigit():
            return None
        self._digits.append(digit)
        if len(self._digits) >= PIN_MAX_DIGITS:
            return self.submit()
        return None

    def backspace(self) -> None:
        if self._digits:
            self._digits.pop()

    def submit(self) -> Optional[ScanToken]:
        if len(self._digits) < PIN_MIN_DIGITS:
            return None
        value = PIN_TOKEN_PREFIX + "".join(self._digits)
        self.cancel()
        return ScanToken(value=value, mode=self.mode)

    def cancel(self) -> None:
        self._digits.clear()
