from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

from ..common.logging import get_logger
from ..core.enums import EventType, QueueItemStatus
from ..core.exceptions import StorageError, ValidationError
from ..events.model import AttendanceEvent

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS queued_events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    idempotency_key TEXT NOT NULL UNIQUE,
    payload TEXT NOT NULL,
    enqueued_at TEXT NOT NULL,
    retries INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    last_error TEXT
);
CREATE TABLE IF NOT EXISTS last_seen (
    subject_key TEXT NOT NULL,
    work_date TEXT NOT NULL,
    event_type TEXT NOT NULL,
    seen_at TEXT NOT NULL,
    PRIMARY KEY (subject_key, work_date)
);
"""

_UPSERT_SEEN = """
INSERT INTO last_seen(subject_key, work_date, event_type, seen_at) VALUES(?,?,?,?)
ON CONFLICT(subject_key, work_date) DO UPDATE SET event_type=excluded.event_type, seen_at=excluded.seen_at
WHERE excluded.seen_at >= last_seen.seen_at
"""


@dataclass(frozen=True)
class QueuedSyncItem:
    """A not-yet-acknowledged event plus device bookkeeping."""

    event: AttendanceEvent
    enqueued_at: datetime
    retries: int = 0
    status: QueueItemStatus = QueueItemStatus.PENDING
    last_error: Optional[str] = None

    @property
    def idempotency_key(self) -> str:
        return self.event.idempotency_key


class DurableLocalQueue:
    """Per-device persistent FIFO of events waiting for server acknowledgement.

    Backed by a sqlite3 file with ``synchronous=FULL``: ``enqueue`` returns only after
    the row is committed, so it survives a crash right after the call. One lock
    serialises every mutation between the capture loop and the sync task.
    """

    def __init__(self, path: str | Path):
        self._path = str(path)
        self._lock = threading.RLock()
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, check_same_thread=False, isolation_level=None)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=FULL")
            self._conn.executescript(_SCHEMA)
            self._count = int(self._conn.execute("SELECT COUNT(*) FROM queued_events").fetchone()[0])
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Local queue unavailable at {self._path}: {e}") from e

    def _write(self, sql: str, params: tuple = ()) -> int:
        try:
            with self._conn:
                cur = self._conn.execute(sql, params)
                return cur.rowcount
        except sqlite3.Error as e:
            raise StorageError(f"Local queue write failed: {e}") from e

    def _read(self, sql: str, params: tuple = ()) -> list[tuple]:
        try:
            return list(self._conn.execute(sql, params).fetchall())
        except sqlite3.Error as e:
            raise StorageError(f"Local queue read failed: {e}") from e

    @contextmanager
    def _transaction(self):
        try:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise StorageError(f"Local queue write failed: {e}") from e

    @staticmethod
    def _seen_row(subject_key: str, event_type: EventType, at: datetime) -> tuple:
        return subject_key, at.date().isoformat(), event_type.value, at.isoformat(timespec="microseconds")

    def enqueue(
        self, event: AttendanceEvent, *, now: datetime | None = None, seen_key: Optional[str] = None
    ) -> QueuedSyncItem:
        """Persist before returning; re-enqueueing a known key keeps the stored item.

        With ``seen_key`` the subject's last direction is written in the same
        transaction, so after a crash the toggle and the queue agree.
        """
        now = now or datetime.now()
        payload = json.dumps(event.to_dict(), sort_keys=True)
        with self._lock:
            with self._transaction() as conn:
                inserted = conn.execute(
                    "INSERT OR IGNORE INTO queued_events(idempotency_key, payload, enqueued_at) VALUES(?,?,?)",
                    (event.idempotency_key, payload, now.isoformat()),
                ).rowcount
                if inserted and seen_key:
                    conn.execute(_UPSERT_SEEN, self._seen_row(seen_key, event.event_type, event.captured_at_device))
            self._count += inserted
            item = self.get(event.idempotency_key)
        if item is None:
            raise StorageError("Local queue lost an item right after enqueue")
        logger.info("queued %s (%d waiting)", event.idempotency_key, self._count)
        return item

    def _to_item(self, row: tuple) -> QueuedSyncItem:
        _seq, _key, payload, enqueued_at, retries, status, last_error = row
        try:
            event = AttendanceEvent.from_dict(json.loads(payload))
        except (ValueError, ValidationError) as e:
            raise StorageError(f"Corrupt queue entry {_key}: {e}") from e
        return QueuedSyncItem(
            event=event,
            enqueued_at=datetime.fromisoformat(enqueued_at),
            retries=int(retries),
            status=QueueItemStatus(status),
            last_error=last_error,
        )

    def get(self, idempotency_key: str) -> Optional[QueuedSyncItem]:
        with self._lock:
            rows = self._read("SELECT * FROM queued_events WHERE idempotency_key=?", (idempotency_key,))
        return self._to_item(rows[0]) if rows else None

    def get_all(self) -> list[QueuedSyncItem]:
        """Every queued item (pending and rejected) in FIFO order."""
        with self._lock:
            rows = self._read("SELECT * FROM queued_events ORDER BY seq ASC")
        return [self._to_item(r) for r in rows]

    def pending(self) -> list[QueuedSyncItem]:
        with self._lock:
            rows = self._read(
                "SELECT * FROM queued_events WHERE status=? ORDER BY seq ASC", (QueueItemStatus.PENDING.value,)
            )
        return [self._to_item(r) for r in rows]

    def rejected(self) -> list[QueuedSyncItem]:
        with self._lock:
            rows = self._read(
                "SELECT * FROM queued_events WHERE status=? ORDER BY seq ASC", (QueueItemStatus.REJECTED.value,)
            )
        return [self._to_item(r) for r in rows]

    def dequeue(self, idempotency_key: str) -> bool:
        """Remove the matching item; no-op (False) when absent."""
        with self._lock:
            removed = self._write("DELETE FROM queued_events WHERE idempotency_key=?", (idempotency_key,))
            self._count -= removed
        return removed > 0

    def mark_rejected(self, idempotency_key: str, reason: str) -> bool:
        with self._lock:
            changed = self._write(
                "UPDATE queued_events SET status=?, last_error=? WHERE idempotency_key=?",
                (QueueItemStatus.REJECTED.value, reason, idempotency_key),
            )
        if changed:
            logger.warning("queued event %s rejected by server: %s", idempotency_key, reason)
        return changed > 0

    def increment_retry(self, keys: Iterable[str], *, error: Optional[str] = None) -> None:
        keys = list(keys)
        if not keys:
            return
        with self._lock:
            try:
                with self._conn:
                    self._conn.executemany(
                        "UPDATE queued_events SET retries=retries+1, last_error=? WHERE idempotency_key=?",
                        [(error, k) for k in keys],
                    )
            except sqlite3.Error as e:
                raise StorageError(f"Local queue write failed: {e}") from e

    def requeue(self, idempotency_key: str) -> bool:
        """Operator decision: send a rejected item again on the next sync."""
        with self._lock:
            changed = self._write(
                "UPDATE queued_events SET status=?, last_error=NULL WHERE idempotency_key=? AND status=?",
                (QueueItemStatus.PENDING.value, idempotency_key, QueueItemStatus.REJECTED.value),
            )
        return changed > 0

    def discard(self, idempotency_key: str) -> bool:
        """Operator decision: drop a rejected item for good."""
        with self._lock:
            removed = self._write(
                "DELETE FROM queued_events WHERE idempotency_key=? AND status=?",
                (idempotency_key, QueueItemStatus.REJECTED.value),
            )
            self._count -= removed
        if removed:
            logger.warning("rejected event %s discarded by operator", idempotency_key)
        return removed > 0

    def record_seen(self, subject_key: str, event_type: EventType, at: datetime) -> None:
        """Remember the latest direction of a subject; an older observation never wins."""
        with self._lock:
            self._write(_UPSERT_SEEN, self._seen_row(subject_key, event_type, at))

    def last_seen(self, subject_key: str, day: date) -> Optional[tuple[EventType, datetime]]:
        with self._lock:
            rows = self._read(
                "SELECT event_type, seen_at FROM last_seen WHERE subject_key=? AND work_date=?",
                (subject_key, day.isoformat()),
            )
        if not rows:
            return None
        event_type, seen_at = rows[0]
        return EventType(event_type), datetime.fromisoformat(seen_at)

    def forget_seen_before(self, day: date) -> int:
        with self._lock:
            return self._write("DELETE FROM last_seen WHERE work_date < ?", (day.isoformat(),))

    def count(self) -> int:
        return self._count

    def close(self) -> None:
        with self._lock:
            self._conn.close()
