from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..common.logging import get_logger
from ..core.constants import DEFAULT_ANTI_PASSBACK_MINUTES, DISPLAY_RESET_SECONDS
from ..core.enums import EventSource, EventType, InputMode, KioskState, ScanOutcome, SubjectType
from ..core.exceptions import RequestRejectedError, StorageError, TransientNetworkError
from ..events.model import AttendanceEvent
from ..tokens.service import peek_subject
from .api_client import KioskApiClient
from .capture import CameraCapture, CaptureStrategy, KeyboardWedgeCapture, PinPadCapture, ScanToken
from .idempotency import IdempotencyKeyGenerator
from .sync import SyncCoordinator

logger = get_logger(__name__)

_RESETTABLE = {KioskState.SUCCESS, KioskState.EARLY_LEAVE, KioskState.BLOCKED, KioskState.ERROR}


@dataclass(frozen=True)
class KioskDisplay:
    """What the kiosk screen shows right now."""

    state: KioskState
    message: str = ""
    subject_name: Optional[str] = None
    grade: Optional[str] = None
    class_name: Optional[str] = None
    event_type: Optional[str] = None
    block_reason: Optional[str] = None
    pickup_person_name: Optional[str] = None
    pickup_person_relation: Optional[str] = None
    offline_queued: bool = False


IDLE_DISPLAY = KioskDisplay(state=KioskState.IDLE, message="Ready to scan")


class KioskStateMachine:
    """Capture loop of one kiosk: idle -> processing -> result -> idle.

    A token is sent online first; on a network failure (or when offline) it is
    written to the durable queue under the same idempotency key, so a request the
    server did store before the connection dropped is deduplicated on push.
    """

    def __init__(
        self,
        *,
        api: KioskApiClient,
        coordinator: SyncCoordinator,
        keys: IdempotencyKeyGenerator,
        tenant_id: str,
        branch_id: str,
        subject_type: SubjectType = SubjectType.LEARNER,
        device_id: Optional[int] = None,
        reset_after: float = DISPLAY_RESET_SECONDS,
        strategies: Optional[dict[InputMode, CaptureStrategy]] = None,
    ):
        self._api = api
        self._coordinator = coordinator
        self._keys = keys
        self._tenant_id = tenant_id
        self._branch_id = branch_id
        self._subject_type = subject_type
        self.device_id = device_id
        self._reset_after = timedelta(seconds=reset_after)
        self._strategies: dict[InputMode, CaptureStrategy] = strategies or {
            InputMode.HID: KeyboardWedgeCapture(),
            InputMode.CAMERA: CameraCapture(),
            InputMode.PIN: PinPadCapture(),
        }
        self._mode = InputMode.HID
        self._busy = threading.Lock()
        self._display = IDLE_DISPLAY
        self._shown_at: Optional[datetime] = None

    @property
    def display(self) -> KioskDisplay:
        return self._display

    @property
    def state(self) -> KioskState:
        return self._display.state

    @property
    def mode(self) -> InputMode:
        return self._mode

    def set_mode(self, mode: InputMode) -> None:
        """Switch input mode; partial input of the previous mode is discarded."""
        if mode == self._mode:
            return
        current = self._strategies.get(self._mode)
        if current is not None:
            current.cancel()
        self._mode = mode
        logger.info("input mode -> %s", mode.value)

    def _show(self, display: KioskDisplay, at: datetime) -> KioskDisplay:
        self._display = display
        self._shown_at = at
        return display

    def tick(self, now: datetime | None = None) -> KioskDisplay:
        """Clock tick: auto-reset result screens and flush an idle HID buffer."""
        now = now or datetime.now()
        if self.state in _RESETTABLE and self._shown_at and now - self._shown_at >= self._reset_after:
            self._show(IDLE_DISPLAY, now)

        hid = self._strategies.get(InputMode.HID)
        if self._mode == InputMode.HID and isinstance(hid, KeyboardWedgeCapture):
            token = hid.poll(now)
            if token:
                return self.handle_token(token, now=now)
        return self._display

    def feed_key(self, ch: str, *, at: datetime | None = None) -> KioskDisplay:
        strategy = self._strategies.get(InputMode.HID)
        if self._mode != InputMode.HID or not isinstance(strategy, KeyboardWedgeCapture):
            return self._display
        token = strategy.on_key(ch, at=at)
        return self.handle_token(token, now=at) if token else self._display

    def feed_frame(self, image, *, at: datetime | None = None) -> KioskDisplay:
        strategy = self._strategies.get(InputMode.CAMERA)
        if self._mode != InputMode.CAMERA or not isinstance(strategy, CameraCapture):
            return self._display
        token = strategy.on_frame(image, at=at)
        return self.handle_token(token, now=at) if token else self._display

    def press_digit(self, digit: str, *, at: datetime | None = None) -> KioskDisplay:
        strategy = self._strategies.get(InputMode.PIN)
        if self._mode != InputMode.PIN or not isinstance(strategy, PinPadCapture):
            return self._display
        token = strategy.press(digit)
        return self.handle_token(token, now=at) if token else self._display

    def erase_digit(self) -> KioskDisplay:
        strategy = self._strategies.get(InputMode.PIN)
        if self._mode == InputMode.PIN and isinstance(strategy, PinPadCapture):
            strategy.backspace()
        return self._display

    def submit_pin(self, *, at: datetime | None = None) -> KioskDisplay:
        strategy = self._strategies.get(InputMode.PIN)
        if self._mode != InputMode.PIN or not isinstance(strategy, PinPadCapture):
            return self._display
        token = strategy.submit()
        return self.handle_token(token, now=at) if token else self._display

    def handle_token(self, token: ScanToken, *, now: datetime | None = None) -> KioskDisplay:
        """Process one captured token. Ignored while another token is in flight."""
        now = now or datetime.now()
        if not self._busy.acquire(blocking=False):
            logger.debug("scan ignored while processing")
            return self._display
        try:
            self._show(KioskDisplay(state=KioskState.PROCESSING, message="Processing..."), now)
            key = self._keys.new_key(at=now)

            if self._coordinator.online and self.device_id is not None:
                try:
                    return self._show(self._online_scan(token, key, now), now)
                except RequestRejectedError as e:
                    return self._show(KioskDisplay(state=KioskState.ERROR, message=str(e)), now)
                except TransientNetworkError as e:
                    self._coordinator.mark_offline(str(e))

            return self._show(self._queue_offline(token, key, now), now)
        finally:
            self._busy.release()

    def _online_scan(self, token: ScanToken, key: str, now: datetime) -> KioskDisplay:
        data = self._api.scan(qr_token=token.value, device_id=self.device_id, idempotency_key=key, captured_at=now)
        name = data.get("learner_name")

        if data.get("status") == ScanOutcome.BLOCKED.value or data.get("blocked"):
            return KioskDisplay(
                state=KioskState.BLOCKED,
                message="Please see reception",
                subject_name=name,
                grade=data.get("grade"),
                class_name=data.get("class_name"),
                block_reason=data.get("block_reason"),
            )

        event_type = data.get("event_type")
        subject = peek_subject(token.value) or token.value
        if event_type in (EventType.CHECK_IN.value, EventType.CHECK_OUT.value):
            try:
                self._coordinator.queue.record_seen(subject, EventType(event_type), now)
            except StorageError as e:
                logger.warning("could not remember direction of %s: %s", subject, e)

        common = dict(
            subject_name=name,
            grade=data.get("grade"),
            class_name=data.get("class_name"),
            event_type=event_type,
        )
        if data.get("early_leave"):
            return KioskDisplay(
                state=KioskState.EARLY_LEAVE,
                message="Early leave approved",
                pickup_person_name=data.get("pickup_person_name"),
                pickup_person_relation=data.get("pickup_person_relation"),
                **common,
            )
        if data.get("status") == ScanOutcome.DUPLICATE.value:
            return KioskDisplay(state=KioskState.SUCCESS, message="Already recorded", **common)

        message = "Welcome" if event_type == EventType.CHECK_IN.value else "Goodbye"
        return KioskDisplay(state=KioskState.SUCCESS, message=message, **common)

    def _offline_event_type(self, subject_key: str, at: datetime) -> EventType:
        """Alternate from the last direction seen today; a re-scan inside the window repeats it."""
        window = int(self._coordinator.config.policy.get("anti_passback_minutes", DEFAULT_ANTI_PASSBACK_MINUTES))
        last = self._coordinator.queue.last_seen(subject_key, at.date())
        if last is None:
            event_type = EventType.CHECK_IN
        elif at - last[1] <= timedelta(minutes=window):
            event_type = last[0]
        elif last[0] == EventType.CHECK_IN:
            event_type = EventType.CHECK_OUT
        else:
            event_type = EventType.CHECK_IN
        return event_type

    def _queue_offline(self, token: ScanToken, key: str, now: datetime) -> KioskDisplay:
        subject = peek_subject(token.value)
        try:
            event_type = self._offline_event_type(subject or token.value, now)
        except StorageError as e:
            logger.error("scan %s NOT saved: %s", key, e)
            return KioskDisplay(state=KioskState.ERROR, message="Not saved, please scan again")
        event = AttendanceEvent(
            idempotency_key=key,
            tenant_id=self._tenant_id,
            branch_id=self._branch_id,
            subject_type=self._subject_type,
            subject_user_id=subject,
            event_type=event_type,
            source=EventSource.KIOSK_SCAN,
            captured_at_device=now,
            qr_token=token.value,
            device_id=str(self.device_id) if self.device_id is not None else None,
        )
        try:
            self._coordinator.queue.enqueue(event, now=now, seen_key=subject or token.value)
        except StorageError as e:
            logger.error("scan %s NOT saved: %s", key, e)
            return KioskDisplay(state=KioskState.ERROR, message="Not saved, please scan again")

        message = "Welcome" if event_type == EventType.CHECK_IN else "Goodbye"
        return KioskDisplay(
            state=KioskState.SUCCESS,
            message=f"{message} (saved offline)",
            event_type=event_type.value,
            offline_queued=True,
        )
