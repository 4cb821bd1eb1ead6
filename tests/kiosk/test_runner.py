from __future__ import annotations

import io
from types import SimpleNamespace

from src.attendance_sync.attendance_sync.core.enums import InputMode, KioskState
from src.attendance_sync.attendance_sync.kiosk.capture import KeyboardWedgeCapture, PinPadCapture
from src.attendance_sync.attendance_sync.kiosk.idempotency import IdempotencyKeyGenerator
from src.attendance_sync.attendance_sync.kiosk.queue import DurableLocalQueue
from src.attendance_sync.attendance_sync.kiosk.runner import Kiosk, render, run
from src.attendance_sync.attendance_sync.kiosk.state_machine import KioskDisplay, KioskStateMachine
from src.attendance_sync.attendance_sync.kiosk.sync import SyncCoordinator

from tests.fakes import LoopbackApi, learner, make_container

SETTINGS = SimpleNamespace(
    KIOSK_BRANCH_ID="b1",
    KIOSK_DEVICE_CODE="gate-1",
    KIOSK_DEVICE_NAME="Gate",
    KIOSK_LOCATION_LABEL="",
    KIOSK_SCAN_POINT_TYPE="GATE",
    KIOSK_SYNC_INTERVAL_SECONDS=60,
    KIOSK_HEARTBEAT_INTERVAL_SECONDS=60,
)


def _kiosk(tmp_path):
    c = make_container([learner("L1")])
    api = LoopbackApi(c)
    queue = DurableLocalQueue(tmp_path / "queue.sqlite3")
    coordinator = SyncCoordinator(api, queue, branch_id="b1")
    machine = KioskStateMachine(
        api=api,
        coordinator=coordinator,
        keys=IdempotencyKeyGenerator("gate-1"),
        tenant_id="t1",
        branch_id="b1",
        strategies={InputMode.HID: KeyboardWedgeCapture(), InputMode.PIN: PinPadCapture()},
    )
    return c, api, Kiosk(settings=SETTINGS, api=api, queue=queue, coordinator=coordinator, machine=machine)


def test_registration_deferred_while_offline(tmp_path):
    _, api, kiosk = _kiosk(tmp_path)
    api.offline = True

    assert kiosk.ensure_registered() is None
    assert not kiosk.coordinator.online

    api.offline = False
    device_id = kiosk.ensure_registered()

    assert device_id == kiosk.machine.device_id
    assert kiosk.coordinator.online
    assert kiosk.ensure_registered() == device_id
    assert api.calls.count("register") == 2


def test_console_loop_scans_and_runs_commands(tmp_path):
    c, _, kiosk = _kiosk(tmp_path)
    kiosk.ensure_registered()
    out = io.StringIO()
    token = c.tokens.issue("L1", tenant_id="t1")

    run(kiosk, io.StringIO(f"{token}\n:offline\n:status\n:quit\n{token}\n"), out)

    text = out.getvalue()
    assert "[SUCCESS] Welcome Learner L1 (Grade 3 3A)" in text
    assert "OFFLINE | queued=0" in text
    assert len(c.events_repo.by_key) == 1


def test_console_operator_can_requeue_rejected(tmp_path):
    c, _, kiosk = _kiosk(tmp_path)
    out = io.StringIO()

    # Unregistered and offline: the PIN scan is queued locally.
    run(kiosk, io.StringIO(":mode pin\n9999\n"), out)
    key = kiosk.queue.get_all()[0].idempotency_key
    kiosk.ensure_registered()

    run(kiosk, io.StringIO(f":rejected\n:discard {key}\n:discard {key}\n"), out)

    text = out.getvalue()
    assert "(saved offline)" in text
    assert f"{key}" in text and "Unknown PIN" in text
    assert "discarded" in text and "not a rejected item" in text
    assert kiosk.queue.count() == 0


def test_render_blocked_display():
    display = KioskDisplay(
        state=KioskState.BLOCKED, message="See the office", subject_name="Learner L1", block_reason="Unpaid fees"
    )

    line = render(display, queued=2, online=True)

    assert line == "[BLOCKED] See the office Learner L1 reason: Unpaid fees | online | queued=2"


def test_console_command_failure_keeps_loop_running(tmp_path):
    _, _, kiosk = _kiosk(tmp_path)
    kiosk.queue.close()
    out = io.StringIO()

    run(kiosk, io.StringIO(":rejected\n:status\n"), out)

    text = out.getvalue()
    assert "command failed" in text
    assert "[IDLE] Ready to scan | OFFLINE | queued=0" in text


def test_console_pin_entry_erases_last_digit(tmp_path):
    _, _, kiosk = _kiosk(tmp_path)

    run(kiosk, io.StringIO(":mode pin\n4829<1\n"), io.StringIO())

    assert [i.event.qr_token for i in kiosk.queue.get_all()] == ["PIN-4821"]
