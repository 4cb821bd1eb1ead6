from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..common.datetime_utils import parse_iso_datetime
from ..common.logging import get_logger
from ..core.enums import EventType, PushItemStatus, SyncTrigger
from ..core.exceptions import RequestRejectedError, StorageError, TransientNetworkError, ValidationError
from ..events.model import AttendanceEvent
from ..sync.service import MAX_PUSH_BATCH
from .api_client import KioskApiClient
from .queue import DurableLocalQueue, QueuedSyncItem

logger = get_logger(__name__)


@dataclass(frozen=True)
class SyncReport:
    trigger: SyncTrigger
    sent: int = 0
    acknowledged: int = 0
    rejected: int = 0
    remaining: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PulledConfig:
    """Last configuration received from the server."""

    policy: dict = field(default_factory=dict)
    devices: list = field(default_factory=list)
    server_time: Optional[str] = None
    pulled_at: Optional[datetime] = None


class SyncCoordinator:
    """Device half of the sync protocol.

    Drains the local queue in FIFO batches and removes an item only after the
    server acknowledged its key (created or duplicate). At most one sync runs at a
    time: a trigger arriving while one is in flight is dropped, not queued.
    """

    def __init__(self, api: KioskApiClient, queue: DurableLocalQueue, *, branch_id: Optional[str] = None):
        self._api = api
        self._queue = queue
        self._branch_id = branch_id
        self._running = threading.Lock()
        self._online = False
        self.config = PulledConfig()

    @property
    def online(self) -> bool:
        return self._online

    @property
    def queue(self) -> DurableLocalQueue:
        return self._queue

    def mark_offline(self, reason: str = "") -> None:
        if self._online:
            logger.warning("kiosk offline: %s", reason or "connection lost")
        self._online = False

    def set_online(self, online: bool) -> Optional[SyncReport]:
        """Connectivity change from the platform; going online triggers a sync."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("kiosk back online, syncing")
            return self.sync(SyncTrigger.RECONNECT)
        return None

    def sync(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> Optional[SyncReport]:
        """Push every pending item, then pull configuration. None if a sync is already running."""
        if not self._running.acquire(blocking=False):
            logger.debug("sync (%s) skipped: already running", trigger.value)
            return None
        try:
            return self._run(trigger)
        finally:
            self._running.release()

    def _run(self, trigger: SyncTrigger) -> SyncReport:
        pending = self._queue.pending()
        sent = acknowledged = rejected = 0
        error: Optional[str] = None

        for start in range(0, len(pending), MAX_PUSH_BATCH):
            batch = pending[start:start + MAX_PUSH_BATCH]
            sent += len(batch)
            try:
                results = self._api.push(item.event for item in batch)
            except TransientNetworkError as e:
                self._queue.increment_retry((i.idempotency_key for i in batch), error=str(e))
                self.mark_offline(str(e))
                error = str(e)
                break
            except RequestRejectedError as e:
                # Whole batch refused (auth, tenant); items stay queued unchanged.
                self._queue.increment_retry((i.idempotency_key for i in batch), error=str(e))
                logger.error("push refused by server: %s", e)
                error = str(e)
                break

            self._online = True
            acked, refused = self._apply_results(batch, results)
            acknowledged += acked
            rejected += refused

        if error is None:
            error = self._pull()

        report = SyncReport(
            trigger=trigger,
            sent=sent,
            acknowledged=acknowledged,
            rejected=rejected,
            remaining=len(self._queue.pending()),
            error=error,
        )
        logger.info(
            "sync %s: sent=%d acked=%d rejected=%d remaining=%d%s",
            trigger.value,
            report.sent,
            report.acknowledged,
            report.rejected,
            report.remaining,
            f" error={error}" if error else "",
        )
        return report

    def _apply_results(self, batch: list[QueuedSyncItem], results: list[dict]) -> tuple[int, int]:
        by_key = {r.get("idempotency_key"): r for r in results if isinstance(r, dict)}
        acked = refused = 0
        unanswered = []

        for item in batch:
            result = by_key.get(item.idempotency_key)
            status = result.get("status") if result else None
            if status in (PushItemStatus.CREATED.value, PushItemStatus.DUPLICATE.value):
                self._queue.dequeue(item.idempotency_key)
                acked += 1
            elif status == PushItemStatus.REJECTED.value:
                self._queue.mark_rejected(item.idempotency_key, str(result.get("reason") or "rejected"))
                refused += 1
            else:
                unanswered.append(item.idempotency_key)

        self._queue.increment_retry(unanswered, error="no result from server")
        return acked, refused

    def _pull(self) -> Optional[str]:
        try:
            data = self._api.pull(branch_id=self._branch_id)
        except TransientNetworkError as e:
            self.mark_offline(str(e))
            return str(e)
        except RequestRejectedError as e:
            logger.error("pull refused by server: %s", e)
            return str(e)

        self._online = True
        self.config = PulledConfig(
            policy=data.get("policy") or {},
            devices=data.get("devices") or [],
            server_time=data.get("server_time"),
            pulled_at=datetime.now(),
        )
        self._remember_directions(data.get("last_seen") or [])
        return None

    def _remember_directions(self, rows: list) -> None:
        """Seed the offline toggle with what other gates of the branch saw today."""
        try:
            self._queue.forget_seen_before(datetime.now().date())
            for row in rows:
                try:
                    event_type = EventType(row["event_type"])
                    at = parse_iso_datetime(str(row["captured_at"]))
                except (KeyError, TypeError, ValueError, ValidationError):
                    logger.warning("ignoring malformed last_seen row: %r", row)
                    continue
                self._queue.record_seen(str(row.get("subject_user_id")), event_type, at)
        except StorageError as e:
            logger.warning("could not store pulled directions: %s", e)

    def submit(self, event: AttendanceEvent, *, now: datetime | None = None) -> Optional[SyncReport]:
        """Queue a locally captured event durably, then try to deliver it right away."""
        self._queue.enqueue(event, now=now)
        if not self._online:
            return None
        return self.sync(SyncTrigger.MANUAL)

    def heartbeat(self, device_id: Optional[int]) -> bool:
        if device_id is None:
            return False
        try:
            self._api.heartbeat(device_id)
        except TransientNetworkError as e:
            self.mark_offline(str(e))
            return False
        except RequestRejectedError as e:
            logger.error("heartbeat refused: %s", e)
            return False
        self.set_online(True)
        return True

    def requeue(self, idempotency_key: str) -> bool:
        return self._queue.requeue(idempotency_key)

    def discard(self, idempotency_key: str) -> bool:
        return self._queue.discard(idempotency_key)


class PeriodicTask:
    """Runs ``fn`` every ``interval`` seconds on a daemon thread until stopped."""

    def __init__(self, name: str, interval: float, fn: Callable[[], object]):
        self._name = name
        self._interval = interval
        self._fn = fn
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._fn()
            except Exception:
                logger.exception("periodic task %s failed", self._name)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
