"""Durable, device-local storage for attendance attempts awaiting submission.

The store is an explicit handle over one SQLite file: open it at start-up,
pass it to whoever needs it, close it at shutdown (or use it as a context
manager). Rows are read back strictly oldest first so check-in/check-out
pairs replay in the order they happened.

Payloads carry a biometric vector, so the store can encrypt them at rest
with a Fernet key.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from attendance.attempts import AttendanceAttempt, InvalidAttempt

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pending_attendance (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    retry_count INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);
CREATE INDEX IF NOT EXISTS pending_attendance_created_idx
    ON pending_attendance (created_at, id);
CREATE TABLE IF NOT EXISTS quarantined_attendance (
    id INTEGER PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    retry_count INTEGER NOT NULL,
    reason TEXT NOT NULL,
    quarantined_at TEXT NOT NULL
);
"""

_COLUMNS = "id, user_id, type, payload, created_at, retry_count, last_error"


class QueueStorageError(RuntimeError):
    """Local queue storage is unavailable or failed mid-operation."""


class CorruptPendingAttempt(ValueError):
    """A queued row exists but its payload cannot be decoded."""

    def __init__(self, pending_id: int, reason: str) -> None:
        super().__init__(f"Pending attempt {pending_id} is corrupt: {reason}")
        self.pending_id = pending_id
        self.reason = reason


@dataclass(frozen=True)
class PendingAttempt:
    id: int
    user_id: str
    direction: str
    created_at: datetime
    retry_count: int = 0
    last_error: Optional[str] = None
    _payload: Optional[dict[str, Any]] = field(default=None, repr=False)
    _decode_error: Optional[str] = field(default=None, repr=False)

    @property
    def attempt(self) -> AttendanceAttempt:
        """The queued attempt.

        Raises:
            CorruptPendingAttempt: the stored payload could not be decoded.
        """

        if self._decode_error is not None or self._payload is None:
            raise CorruptPendingAttempt(self.id, self._decode_error or "empty payload")
        try:
            return AttendanceAttempt.from_payload(self._payload)
        except InvalidAttempt as exc:
            raise CorruptPendingAttempt(self.id, str(exc)) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingAttemptStore:
    """SQLite-backed FIFO of :class:`PendingAttempt` rows.

    Args:
        path: Database file, or ``":memory:"``.
        encryption_key: Optional Fernet key used to encrypt payloads at rest.
        clock: Source of ``created_at`` timestamps.
    """

    def __init__(
        self,
        path: Union[str, Path],
        *,
        encryption_key: Optional[Union[str, bytes]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.path = str(path)
        self._cipher = Fernet(encryption_key) if encryption_key else None
        self._clock = clock
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def __enter__(self) -> "PendingAttemptStore":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            try:
                if self.path != ":memory:":
                    Path(self.path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.path, check_same_thread=False)
                conn.executescript(_SCHEMA)
            except (sqlite3.Error, OSError) as exc:
                raise QueueStorageError(f"Unable to open attendance queue at {self.path}: {exc}") from exc
            self._conn = conn
            logger.debug("Opened attendance queue at %s", self.path)

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            except sqlite3.Error as exc:  # pragma: no cover - close on a broken file
                logger.warning("Error closing attendance queue: %s", exc)
            finally:
                self._conn = None

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        if self._conn is None:
            raise QueueStorageError("Attendance queue is not open.")
        try:
            with self._conn:
                return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise QueueStorageError(f"Attendance queue operation failed: {exc}") from exc

    # --- payload codec ---

    def _encode(self, attempt: AttendanceAttempt) -> str:
        raw = json.dumps(attempt.to_payload(), separators=(",", ":"))
        if self._cipher is None:
            return raw
        return self._cipher.encrypt(raw.encode()).decode("ascii")

    def _decode(self, stored: str) -> dict[str, Any]:
        raw = stored
        if self._cipher is not None:
            raw = self._cipher.decrypt(stored.encode("ascii")).decode()
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("payload is not a JSON object")
        return payload

    def _row_to_pending(self, row: tuple[Any, ...]) -> PendingAttempt:
        pending_id, user_id, direction, stored, created_at, retry_count, last_error = row
        payload: Optional[dict[str, Any]] = None
        decode_error: Optional[str] = None
        try:
            payload = self._decode(stored)
        except (InvalidToken, UnicodeError, ValueError) as exc:
            decode_error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        return PendingAttempt(
            id=pending_id,
            user_id=user_id,
            direction=direction,
            created_at=datetime.fromisoformat(created_at),
            retry_count=retry_count,
            last_error=last_error,
            _payload=payload,
            _decode_error=decode_error,
        )

    # --- operations ---

    def enqueue(self, attempt: AttendanceAttempt) -> PendingAttempt:
        """Durably append ``attempt`` with a zero retry count."""

        created_at = self._clock().astimezone(timezone.utc).isoformat(timespec="microseconds")
        with self._lock:
            cursor = self._execute(
                "INSERT INTO pending_attendance (user_id, type, payload, created_at, retry_count)"
                " VALUES (?, ?, ?, ?, 0)",
                (attempt.user_id, attempt.direction.value, self._encode(attempt), created_at),
            )
            pending_id = cursor.lastrowid
        logger.info(
            "Queued %s attempt %s for user %s",
            attempt.direction.value,
            pending_id,
            attempt.user_id,
        )
        return PendingAttempt(
            id=pending_id,
            user_id=attempt.user_id,
            direction=attempt.direction.value,
            created_at=datetime.fromisoformat(created_at),
            _payload=attempt.to_payload(),
        )

    def list_pending(self) -> list[PendingAttempt]:
        """Return every queued attempt, oldest first."""

        with self._lock:
            rows = self._execute(
                f"SELECT {_COLUMNS} FROM pending_attendance ORDER BY created_at ASC, id ASC"
            ).fetchall()
        return [self._row_to_pending(row) for row in rows]

    def get(self, pending_id: int) -> Optional[PendingAttempt]:
        with self._lock:
            row = self._execute(
                f"SELECT {_COLUMNS} FROM pending_attendance WHERE id = ?", (pending_id,)
            ).fetchone()
        return self._row_to_pending(row) if row else None

    def count(self) -> int:
        with self._lock:
            (total,) = self._execute("SELECT COUNT(*) FROM pending_attendance").fetchone()
        return int(total)

    def delete(self, pending_id: int) -> bool:
        with self._lock:
            cursor = self._execute("DELETE FROM pending_attendance WHERE id = ?", (pending_id,))
        return cursor.rowcount > 0

    def record_failure(self, pending_id: int, error: str) -> None:
        """Increment the retry counter and remember the latest error."""

        with self._lock:
            self._execute(
                "UPDATE pending_attendance SET retry_count = retry_count + 1, last_error = ?"
                " WHERE id = ?",
                (error, pending_id),
            )

    def quarantine(self, pending_id: int, reason: str) -> bool:
        """Move an unreadable row out of the queue, keeping its raw payload.

        Returns ``False`` when the row no longer exists.
        """

        quarantined_at = self._clock().astimezone(timezone.utc).isoformat(timespec="microseconds")
        with self._lock:
            if self._conn is None:
                raise QueueStorageError("Attendance queue is not open.")
            try:
                with self._conn:
                    cursor = self._conn.execute(
                        "INSERT INTO quarantined_attendance"
                        " (id, user_id, type, payload, created_at, retry_count, reason, quarantined_at)"
                        " SELECT id, user_id, type, payload, created_at, retry_count + 1, ?, ?"
                        " FROM pending_attendance WHERE id = ?",
                        (reason, quarantined_at, pending_id),
                    )
                    if cursor.rowcount == 0:
                        return False
                    self._conn.execute("DELETE FROM pending_attendance WHERE id = ?", (pending_id,))
            except sqlite3.Error as exc:
                raise QueueStorageError(f"Attendance queue operation failed: {exc}") from exc
        return True

    def list_quarantined(self) -> list[dict[str, Any]]:
        """Quarantined rows, oldest first, with their last decode error."""

        with self._lock:
            rows = self._execute(
                "SELECT id, user_id, type, created_at, retry_count, reason, quarantined_at"
                " FROM quarantined_attendance ORDER BY quarantined_at ASC, id ASC"
            ).fetchall()
        keys = ("id", "user_id", "type", "created_at", "retry_count", "reason", "quarantined_at")
        return [dict(zip(keys, row)) for row in rows]


__all__ = [
    "CorruptPendingAttempt",
    "PendingAttempt",
    "PendingAttemptStore",
    "QueueStorageError",
]
