from __future__ import annotations

from datetime import datetime, timedelta

from src.attendance_sync.attendance_sync.core.enums import EventType, InputMode, KioskState
from src.attendance_sync.attendance_sync.kiosk.capture import CameraCapture, KeyboardWedgeCapture, PinPadCapture, ScanToken
from src.attendance_sync.attendance_sync.kiosk.idempotency import IdempotencyKeyGenerator
from src.attendance_sync.attendance_sync.kiosk.queue import DurableLocalQueue
from src.attendance_sync.attendance_sync.kiosk.state_machine import KioskStateMachine
from src.attendance_sync.attendance_sync.kiosk.sync import SyncCoordinator

from tests.fakes import LoopbackApi, approved_early_leave, learner, make_container

T0 = datetime(2026, 3, 2, 7, 35)


def _kiosk(tmp_path, subjects=None, api_cls=LoopbackApi):
    c = make_container(subjects or [learner("L1")])
    api = api_cls(c)
    queue = DurableLocalQueue(tmp_path / "queue.sqlite3")
    coordinator = SyncCoordinator(api, queue, branch_id="b1")
    device = api.register_device(branch_id="b1", device_code="gate-1", device_name="Gate")
    coordinator.set_online(True)
    machine = KioskStateMachine(
        api=api,
        coordinator=coordinator,
        keys=IdempotencyKeyGenerator("gate-1"),
        tenant_id="t1",
        branch_id="b1",
        device_id=device["device_id"],
        strategies={
            InputMode.HID: KeyboardWedgeCapture(),
            InputMode.CAMERA: CameraCapture(decoder=lambda frame: [frame]),
            InputMode.PIN: PinPadCapture(),
        },
    )
    return c, api, queue, coordinator, machine


def _scan(machine, value, at):
    return machine.handle_token(ScanToken(value=value, mode=InputMode.HID), now=at)


def test_online_scan_shows_subject(tmp_path):
    c, _, queue, _, machine = _kiosk(tmp_path)

    display = _scan(machine, c.tokens.issue("L1", tenant_id="t1"), T0)

    assert display.state == KioskState.SUCCESS
    assert display.subject_name == "Learner L1"
    assert display.event_type == "CHECK_IN"
    assert not display.offline_queued
    assert queue.count() == 0
    assert len(c.events_repo.by_key) == 1


def test_hid_input_runs_full_loop(tmp_path):
    c, _, _, _, machine = _kiosk(tmp_path)

    for ch in c.tokens.issue("L1", tenant_id="t1") + "\n":
        machine.feed_key(ch, at=T0)

    assert machine.state == KioskState.SUCCESS


def test_blocked_subject_shows_reason(tmp_path):
    c, _, _, _, machine = _kiosk(tmp_path, [learner("L1", block_reason="See office")])

    display = _scan(machine, c.tokens.issue("L1", tenant_id="t1"), T0)

    assert display.state == KioskState.BLOCKED
    assert display.block_reason == "See office"


def test_early_leave_checkout_shows_pickup(tmp_path):
    c, _, _, _, machine = _kiosk(tmp_path)
    approved_early_leave(
        c, learner_user_id="L1", date="2026-03-02", pickup_person_name="An", pickup_person_relation="Uncle"
    )
    token = c.tokens.issue("L1", tenant_id="t1")

    _scan(machine, token, T0)
    display = _scan(machine, token, datetime(2026, 3, 2, 11, 0))

    assert display.state == KioskState.EARLY_LEAVE
    assert display.pickup_person_name == "An"
    assert display.event_type == "CHECK_OUT"


def test_rejected_token_shows_error_and_is_not_queued(tmp_path):
    _, _, queue, _, machine = _kiosk(tmp_path)

    display = _scan(machine, "not-a-valid-token", T0)

    assert display.state == KioskState.ERROR
    assert queue.count() == 0


def test_network_failure_queues_then_reconnect_syncs(tmp_path):
    c, api, queue, coordinator, machine = _kiosk(tmp_path)
    api.offline = True

    display = _scan(machine, c.tokens.issue("L1", tenant_id="t1"), T0)

    assert display.state == KioskState.SUCCESS
    assert display.offline_queued
    assert not coordinator.online
    queued = queue.get_all()[0]
    assert queued.event.subject_user_id == "L1"
    assert queued.event.event_type == EventType.CHECK_IN

    api.offline = False
    report = coordinator.set_online(True)

    assert report.acknowledged == 1
    assert queue.count() == 0
    stored = c.events_repo.by_key[queued.idempotency_key]
    assert stored.subject_user_id == "L1"


def test_lost_response_is_deduplicated_by_key(tmp_path):
    c, api, queue, coordinator, machine = _kiosk(tmp_path)
    api.drop_after_store = True

    display = _scan(machine, c.tokens.issue("L1", tenant_id="t1"), T0)

    assert display.offline_queued
    assert len(c.events_repo.by_key) == 1

    api.drop_after_store = False
    report = coordinator.set_online(True)

    assert report.acknowledged == 1
    assert queue.count() == 0
    assert len(c.events_repo.by_key) == 1


def test_offline_direction_toggles_per_subject(tmp_path):
    c, api, queue, _, machine = _kiosk(tmp_path)
    api.offline = True
    token = c.tokens.issue("L1", tenant_id="t1")

    _scan(machine, token, T0)
    _scan(machine, token, T0 + timedelta(minutes=2))
    _scan(machine, token, datetime(2026, 3, 2, 14, 5))

    types = [i.event.event_type for i in queue.get_all()]
    assert types == [EventType.CHECK_IN, EventType.CHECK_IN, EventType.CHECK_OUT]


def test_scan_ignored_while_processing(tmp_path):
    class ReentrantApi(LoopbackApi):
        nested = None

        def scan(self, **kwargs):
            ReentrantApi.nested = self.machine.handle_token(ScanToken("second", InputMode.HID), now=T0)
            return super().scan(**kwargs)

    c, api, _, _, machine = _kiosk(tmp_path, api_cls=ReentrantApi)
    api.machine = machine

    display = _scan(machine, c.tokens.issue("L1", tenant_id="t1"), T0)

    assert ReentrantApi.nested.state == KioskState.PROCESSING
    assert api.calls.count("scan") == 1
    assert display.state == KioskState.SUCCESS


def test_result_screen_resets_after_timeout(tmp_path):
    c, _, _, _, machine = _kiosk(tmp_path)
    _scan(machine, c.tokens.issue("L1", tenant_id="t1"), T0)

    assert machine.tick(T0 + timedelta(seconds=4)).state == KioskState.SUCCESS
    assert machine.tick(T0 + timedelta(seconds=5)).state == KioskState.IDLE


def test_mode_switch_discards_partial_input(tmp_path):
    _, api, _, _, machine = _kiosk(tmp_path)
    machine.set_mode(InputMode.PIN)
    machine.press_digit("4")
    machine.press_digit("8")

    machine.set_mode(InputMode.HID)
    machine.set_mode(InputMode.PIN)
    machine.press_digit("2")
    machine.press_digit("1")
    display = machine.submit_pin()

    assert display.state == KioskState.IDLE
    assert "scan" not in api.calls
    assert machine.feed_key("\n").state == KioskState.IDLE


def test_pin_entry_identifies_subject(tmp_path):
    c, _, _, _, machine = _kiosk(tmp_path)
    c.subjects_repo.upsert(learner("L1", pin_digest=c.tokens.pin_digest("4821")))
    machine.set_mode(InputMode.PIN)

    for d in "4821":
        machine.press_digit(d, at=T0)
    display = machine.submit_pin(at=T0)

    assert display.state == KioskState.SUCCESS
    assert display.subject_name == "Learner L1"


def test_camera_frame_runs_scan(tmp_path):
    c, _, _, _, machine = _kiosk(tmp_path)
    machine.set_mode(InputMode.CAMERA)

    display = machine.feed_frame(c.tokens.issue("L1", tenant_id="t1"), at=T0)

    assert display.state == KioskState.SUCCESS


def test_storage_failure_is_reported_not_hidden(tmp_path):
    c, api, queue, _, machine = _kiosk(tmp_path)
    api.offline = True
    queue.close()

    display = _scan(machine, c.tokens.issue("L1", tenant_id="t1"), T0)

    assert display.state == KioskState.ERROR
    assert "Not saved" in display.message


def test_offline_direction_survives_restart(tmp_path):
    c, api, queue, _, machine = _kiosk(tmp_path)
    token = c.tokens.issue("L1", tenant_id="t1")
    _scan(machine, token, T0)
    queue.close()

    reopened = DurableLocalQueue(tmp_path / "queue.sqlite3")
    restarted = KioskStateMachine(
        api=api,
        coordinator=SyncCoordinator(api, reopened, branch_id="b1"),
        keys=IdempotencyKeyGenerator("gate-1"),
        tenant_id="t1",
        branch_id="b1",
        device_id=machine.device_id,
    )
    api.offline = True

    display = _scan(restarted, token, datetime(2026, 3, 2, 14, 5))

    assert display.offline_queued
    assert display.event_type == "CHECK_OUT"
    assert [i.event.event_type for i in reopened.get_all()] == [EventType.CHECK_OUT]
