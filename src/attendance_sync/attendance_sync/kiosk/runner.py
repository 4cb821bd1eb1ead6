from __future__ import annotations

import importlib
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, TextIO

from dotenv import load_dotenv
from PIL import Image

from config import get_settings_module

from ..common.logging import configure_logging, get_logger
from ..common.validators import require_enum
from ..core.enums import InputMode, KioskState, SubjectType, SyncTrigger
from ..core.exceptions import RequestRejectedError, StorageError, TransientNetworkError
from .api_client import KioskApiClient
from .idempotency import IdempotencyKeyGenerator
from .queue import DurableLocalQueue
from .state_machine import KioskDisplay, KioskStateMachine
from .sync import PeriodicTask, SyncCoordinator

logger = get_logger(__name__)

HELP = """commands:
  <code>            scanned code (HID mode), digits (PIN mode) or image path (CAMERA mode)
                    in PIN mode '<' erases the previous digit
  :mode hid|camera|pin
  :sync             sync now
  :online / :offline
  :status
  :rejected         list items the server rejected
  :requeue <key>    send a rejected item again
  :discard <key>    drop a rejected item
  :quit"""


@dataclass
class Kiosk:
    settings: object
    api: KioskApiClient
    queue: DurableLocalQueue
    coordinator: SyncCoordinator
    machine: KioskStateMachine
    sync_task: PeriodicTask = field(init=False)
    heartbeat_task: PeriodicTask = field(init=False)

    def __post_init__(self):
        s = self.settings
        self.sync_task = PeriodicTask("kiosk-sync", float(s.KIOSK_SYNC_INTERVAL_SECONDS), self.periodic_sync)
        self.heartbeat_task = PeriodicTask(
            "kiosk-heartbeat", float(s.KIOSK_HEARTBEAT_INTERVAL_SECONDS), self.periodic_heartbeat
        )

    def ensure_registered(self) -> Optional[int]:
        """Register on first contact; retried by the periodic tasks while offline."""
        if self.machine.device_id is not None:
            return self.machine.device_id
        s = self.settings
        try:
            device = self.api.register_device(
                branch_id=s.KIOSK_BRANCH_ID,
                device_code=s.KIOSK_DEVICE_CODE,
                device_name=s.KIOSK_DEVICE_NAME or s.KIOSK_DEVICE_CODE,
                location_label=s.KIOSK_LOCATION_LABEL or None,
                scan_point_type=s.KIOSK_SCAN_POINT_TYPE,
            )
        except TransientNetworkError as e:
            logger.warning("registration deferred, server unreachable: %s", e)
            self.coordinator.mark_offline(str(e))
            return None
        except RequestRejectedError as e:
            logger.error("registration refused: %s", e)
            return None

        self.machine.device_id = int(device["device_id"])
        logger.info("registered as device #%s", self.machine.device_id)
        self.coordinator.set_online(True)
        return self.machine.device_id

    def periodic_sync(self) -> None:
        self.ensure_registered()
        self.coordinator.sync(SyncTrigger.PERIODIC)

    def periodic_heartbeat(self) -> None:
        device_id = self.ensure_registered()
        self.coordinator.heartbeat(device_id)

    def start(self) -> None:
        self.ensure_registered()
        self.sync_task.start()
        self.heartbeat_task.start()

    def stop(self) -> None:
        self.sync_task.stop(timeout=5)
        self.heartbeat_task.stop(timeout=5)
        self.queue.close()


def build_kiosk(settings) -> Kiosk:
    queue = DurableLocalQueue(settings.KIOSK_QUEUE_PATH)
    api = KioskApiClient(
        settings.KIOSK_API_BASE_URL,
        tenant_id=settings.KIOSK_TENANT_ID,
        timeout=float(settings.KIOSK_HTTP_TIMEOUT_SECONDS),
    )
    coordinator = SyncCoordinator(api, queue, branch_id=settings.KIOSK_BRANCH_ID)
    machine = KioskStateMachine(
        api=api,
        coordinator=coordinator,
        keys=IdempotencyKeyGenerator(settings.KIOSK_DEVICE_CODE),
        tenant_id=settings.KIOSK_TENANT_ID,
        branch_id=settings.KIOSK_BRANCH_ID,
        subject_type=require_enum(SubjectType, settings.KIOSK_SUBJECT_TYPE, "KIOSK_SUBJECT_TYPE"),
        reset_after=float(settings.KIOSK_DISPLAY_RESET_SECONDS),
    )
    return Kiosk(settings=settings, api=api, queue=queue, coordinator=coordinator, machine=machine)


def render(display: KioskDisplay, *, queued: int, online: bool) -> str:
    parts = [f"[{display.state.value.upper()}]", display.message]
    if display.subject_name:
        who = display.subject_name
        if display.grade or display.class_name:
            who += f" ({' '.join(x for x in (display.grade, display.class_name) if x)})"
        parts.append(who)
    if display.state == KioskState.BLOCKED and display.block_reason:
        parts.append(f"reason: {display.block_reason}")
    if display.pickup_person_name:
        relation = f", {display.pickup_person_relation}" if display.pickup_person_relation else ""
        parts.append(f"pickup: {display.pickup_person_name}{relation}")
    parts.append(f"| {'online' if online else 'OFFLINE'} | queued={queued}")
    return " ".join(p for p in parts if p)


def _handle_command(kiosk: Kiosk, line: str, out: TextIO) -> bool:
    """Run one ':' command. Returns False on quit."""
    cmd, _, arg = line[1:].partition(" ")
    arg = arg.strip()
    coordinator = kiosk.coordinator

    if cmd == "quit":
        return False
    if cmd == "mode":
        try:
            kiosk.machine.set_mode(InputMode(arg.upper()))
        except ValueError:
            print("unknown mode", file=out)
    elif cmd == "sync":
        report = coordinator.sync(SyncTrigger.MANUAL)
        print(report or "sync already running", file=out)
    elif cmd == "online":
        kiosk.ensure_registered()
        print(coordinator.set_online(True) or "online", file=out)
    elif cmd == "offline":
        coordinator.mark_offline("operator")
    elif cmd == "status":
        print(render(kiosk.machine.display, queued=kiosk.queue.count(), online=coordinator.online), file=out)
    elif cmd == "rejected":
        for item in kiosk.queue.rejected():
            print(f"{item.idempotency_key}  {item.event.captured_at_device.isoformat()}  {item.last_error}", file=out)
    elif cmd == "requeue":
        print("requeued" if coordinator.requeue(arg) else "not a rejected item", file=out)
    elif cmd == "discard":
        print("discarded" if coordinator.discard(arg) else "not a rejected item", file=out)
    else:
        print(HELP, file=out)
    return True


def _handle_input(kiosk: Kiosk, line: str) -> KioskDisplay:
    machine = kiosk.machine
    now = datetime.now()
    if machine.mode == InputMode.PIN:
        for ch in line:
            if ch == "<":
                machine.erase_digit()
            else:
                machine.press_digit(ch, at=now)
        return machine.submit_pin(at=now)
    if machine.mode == InputMode.CAMERA:
        with Image.open(line) as img:
            return machine.feed_frame(img, at=now)
    for ch in line + "\n":
        machine.feed_key(ch, at=now)
    return machine.display


def run(kiosk: Kiosk, stdin: TextIO = sys.stdin, out: TextIO = sys.stdout) -> None:
    """Line-oriented console front end of the kiosk loop."""
    print(HELP, file=out)
    for raw in stdin:
        line = raw.strip()
        kiosk.machine.tick()
        if not line:
            continue
        if line.startswith(":"):
            try:
                keep_running = _handle_command(kiosk, line, out)
            except (OSError, StorageError) as e:
                logger.error("command %s failed: %s", line, e)
                print(f"command failed: {e}", file=out)
                continue
            except Exception:
                logger.exception("command %s failed", line)
                print("command failed, see log", file=out)
                continue
            if not keep_running:
                break
            continue
        try:
            display = _handle_input(kiosk, line)
        except (OSError, StorageError) as e:
            logger.error("input failed: %s", e)
            continue
        print(render(display, queued=kiosk.queue.count(), online=kiosk.coordinator.online), file=out)


def main() -> None:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"), getattr(settings, "LOG_FILE", None))

    kiosk = build_kiosk(settings)
    kiosk.start()
    try:
        run(kiosk)
    finally:
        kiosk.stop()
