from __future__ import annotations

from datetime import datetime, timedelta

from src.attendance_sync.attendance_sync.core.enums import InputMode
from src.attendance_sync.attendance_sync.kiosk.capture import CameraCapture, KeyboardWedgeCapture, PinPadCapture
from src.attendance_sync.attendance_sync.kiosk.idempotency import IdempotencyKeyGenerator

T0 = datetime(2026, 3, 2, 7, 35)


def test_keyboard_wedge_emits_on_enter():
    hid = KeyboardWedgeCapture()
    for ch in "abc123":
        assert hid.on_key(ch, at=T0) is None

    token = hid.on_key("\n", at=T0)

    assert token.value == "abc123"
    assert token.mode == InputMode.HID


def test_keyboard_wedge_flushes_after_idle_gap_and_drops_noise():
    hid = KeyboardWedgeCapture(min_length=4)
    for ch in "tok-1":
        hid.on_key(ch, at=T0)

    assert hid.poll(T0 + timedelta(milliseconds=50)) is None
    assert hid.poll(T0 + timedelta(milliseconds=200)).value == "tok-1"

    hid.on_key("x", at=T0)
    assert hid.on_key("\r", at=T0) is None


def test_keyboard_wedge_splits_back_to_back_codes_without_terminator():
    hid = KeyboardWedgeCapture()
    tokens = [hid.on_key(ch, at=T0) for ch in "ABCD"]
    later = T0 + timedelta(seconds=2)
    tokens += [hid.on_key(ch, at=later) for ch in "EFGH"]
    tokens.append(hid.on_key("\n", at=later))

    assert [t.value for t in tokens if t is not None] == ["ABCD", "EFGH"]


def test_camera_dedupes_same_code_within_cooldown():
    frames = {"f1": ["code-A"], "f2": ["code-A"], "f3": [], "f4": ["code-B"]}
    cam = CameraCapture(decoder=lambda frame: frames[frame], cooldown=timedelta(seconds=3))

    assert cam.on_frame("f1", at=T0).value == "code-A"
    assert cam.on_frame("f2", at=T0 + timedelta(seconds=1)) is None
    assert cam.on_frame("f3", at=T0 + timedelta(seconds=2)) is None
    assert cam.on_frame("f4", at=T0 + timedelta(seconds=2)).value == "code-B"
    assert cam.on_frame("f1", at=T0 + timedelta(seconds=10)).value == "code-A"


def test_pin_pad_prefixes_and_enforces_length():
    pad = PinPadCapture()
    for d in "482":
        pad.press(d)
    assert pad.submit() is None

    pad.press("1")
    token = pad.submit()
    assert token.value == "PIN-4821"
    assert pad.entered == 0


def test_pin_pad_auto_submits_at_max_length():
    pad = PinPadCapture()
    results = [pad.press(d) for d in "12345678"]

    assert results[:-1] == [None] * 7
    assert results[-1].value == "PIN-12345678"


def test_pin_pad_backspace_removes_last_digit():
    pad = PinPadCapture()
    for d in "4829":
        pad.press(d)
    pad.backspace()
    pad.press("1")

    assert pad.submit().value == "PIN-4821"


def test_cancel_discards_partial_input():
    pad = PinPadCapture()
    pad.press("1")
    pad.press("2")
    pad.cancel()

    assert pad.entered == 0


def test_idempotency_keys_are_unique_and_prefixed():
    keys = IdempotencyKeyGenerator("gate-1")
    minted = {keys.new_key(at=T0) for _ in range(200)}

    assert len(minted) == 200
    assert all(k.startswith("gate-1-") for k in minted)
    assert all(len(k) <= 128 for k in minted)
