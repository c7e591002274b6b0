"""Replay queued attendance attempts against the admission engine.

Each pass walks the queue oldest first and settles every entry:

* admitted attempts are removed,
* rejected attempts are removed and handed to ``on_rejection``; the same
  stale payload would be rejected again, so they are never retried,
* attempts that never reached a decision stay queued with their retry
  counter bumped,
* rows whose payload cannot be decoded stay queued until they have failed
  ``max_corrupt_reads`` times, then move to the store's quarantine table.

Duplicate delivery is safe because the engine itself refuses a second
check-in while one is open. Only one pass runs at a time per reconciler; a
pass requested while another is in flight is skipped, not queued.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from attendance.outcomes import Admitted, Rejected
from offline_queue.store import CorruptPendingAttempt, PendingAttempt, PendingAttemptStore, QueueStorageError
from offline_queue.transport import EngineTransport, TransportFailure

logger = logging.getLogger(__name__)

RejectionHandler = Callable[[PendingAttempt, Rejected], None]

DEFAULT_MAX_CORRUPT_READS = 5


@dataclass
class ReconcileResult:
    total: int = 0
    succeeded: int = 0
    rejected: int = 0
    retrying: int = 0
    corrupt: int = 0
    quarantined: int = 0
    skipped: bool = False
    errors: dict[int, str] = field(default_factory=dict)
    rejections: list[tuple[PendingAttempt, Rejected]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.rejected + self.retrying + self.corrupt


def _log_rejection(entry: PendingAttempt, outcome: Rejected) -> None:
    logger.warning(
        "Queued %s attempt %s was rejected: %s (%s)",
        entry.direction,
        entry.id,
        outcome.code.value,
        outcome.message,
    )


class QueueReconciler:
    """Drive reconciliation passes for one device's queue.

    Args:
        store: The open pending-attempt store.
        transport: Delivers attempts to the admission engine.
        on_rejection: Receives each permanently rejected entry so the user can
            be told why; defaults to logging it.
        max_corrupt_reads: Undecodable rows are quarantined on this failed read.
    """

    def __init__(
        self,
        store: PendingAttemptStore,
        transport: EngineTransport,
        *,
        on_rejection: Optional[RejectionHandler] = None,
        max_corrupt_reads: int = DEFAULT_MAX_CORRUPT_READS,
    ) -> None:
        if max_corrupt_reads < 1:
            raise ValueError("max_corrupt_reads must be at least 1.")
        self._store = store
        self._transport = transport
        self._on_rejection = on_rejection or _log_rejection
        self._max_corrupt_reads = max_corrupt_reads
        self._pass_lock = threading.Lock()
        self._online: Optional[bool] = None
        self._thread: Optional[threading.Thread] = None
        self._thread_stop: Optional[threading.Event] = None

    @property
    def is_running(self) -> bool:
        return self._pass_lock.locked()

    @property
    def is_online(self) -> Optional[bool]:
        return self._online

    def reconcile(self) -> ReconcileResult:
        """Run one pass over the queue, or skip if a pass is already running.

        Raises:
            QueueStorageError: the queue could not be read at all.
        """

        return self._reconcile(stop=None)

    def _reconcile(self, stop: Optional[threading.Event]) -> ReconcileResult:
        if not self._pass_lock.acquire(blocking=False):
            logger.debug("Reconciliation already in progress; skipping")
            return ReconcileResult(skipped=True)
        try:
            return self._run_pass(stop)
        finally:
            self._pass_lock.release()

    def _run_pass(self, stop: Optional[threading.Event]) -> ReconcileResult:
        pending = self._store.list_pending()
        result = ReconcileResult()
        if not pending:
            return result

        logger.info("Reconciling %d queued attendance attempts", len(pending))
        for entry in pending:
            if stop is not None and stop.is_set():
                logger.info("Reconciliation stopped; %d attempts left queued", len(pending) - result.total)
                break
            result.total += 1
            self._settle(entry, result)

        logger.info(
            "Reconciliation finished: %d admitted, %d rejected, %d retrying, %d corrupt",
            result.succeeded,
            result.rejected,
            result.retrying,
            result.corrupt,
        )
        return result

    def _settle(self, entry: PendingAttempt, result: ReconcileResult) -> None:
        try:
            attempt = entry.attempt
        except CorruptPendingAttempt as exc:
            self._settle_corrupt(entry, exc, result)
            return

        try:
            outcome = self._transport.submit(attempt)
        except Exception as exc:
            logger.exception("Transport raised while submitting queued attempt %s", entry.id)
            outcome = TransportFailure(f"{type(exc).__name__}: {exc}")

        if isinstance(outcome, Admitted):
            result.succeeded += 1
            self._delete(entry, result)
            logger.info(
                "Queued %s attempt %s admitted as record %s",
                entry.direction,
                entry.id,
                outcome.attendance_id,
            )
        elif isinstance(outcome, Rejected):
            result.rejected += 1
            result.errors[entry.id] = f"{outcome.code.value}: {outcome.message}"
            result.rejections.append((entry, outcome))
            self._delete(entry, result)
            try:
                self._on_rejection(entry, outcome)
            except Exception:
                logger.exception("Rejection handler failed for queued attempt %s", entry.id)
        else:
            result.retrying += 1
            result.errors[entry.id] = outcome.reason
            self._record_failure(entry, outcome.reason)

    def _settle_corrupt(self, entry: PendingAttempt, exc: CorruptPendingAttempt, result: ReconcileResult) -> None:
        logger.error("%s", exc)
        result.corrupt += 1
        result.errors[entry.id] = str(exc)
        if entry.retry_count + 1 < self._max_corrupt_reads:
            self._record_failure(entry, str(exc))
            return
        try:
            self._store.quarantine(entry.id, str(exc))
        except QueueStorageError as storage_exc:
            logger.error("Could not quarantine attempt %s: %s", entry.id, storage_exc)
            self._record_failure(entry, str(exc))
            return
        result.quarantined += 1
        logger.warning(
            "Quarantined queued attempt %s after %d unreadable passes",
            entry.id,
            entry.retry_count + 1,
        )

    def _delete(self, entry: PendingAttempt, result: ReconcileResult) -> None:
        try:
            self._store.delete(entry.id)
        except QueueStorageError as exc:
            # The entry replays next pass; the engine rejects the duplicate.
            logger.error("Could not remove settled attempt %s: %s", entry.id, exc)
            result.errors.setdefault(entry.id, str(exc))

    def _record_failure(self, entry: PendingAttempt, error: str) -> None:
        try:
            self._store.record_failure(entry.id, error)
        except QueueStorageError as exc:
            logger.error("Could not record failure for attempt %s: %s", entry.id, exc)

    # --- triggers ---

    def on_connectivity_change(self, is_online: bool) -> Optional[ReconcileResult]:
        """Reconcile when connectivity comes back; returns the pass result if one ran."""

        was_online = self._online
        self._online = is_online
        if not is_online or was_online:
            return None
        if self._store.count() == 0:
            return None
        logger.info("Connectivity restored; reconciling queued attendance attempts")
        return self.reconcile()

    def start_background_sync(self, interval_seconds: float = 300.0) -> None:
        """Reconcile every ``interval_seconds`` on a daemon thread."""

        if self._thread is not None and self._thread.is_alive():
            return
        stop = threading.Event()
        self._thread_stop = stop
        self._thread = threading.Thread(
            target=self._background_loop,
            args=(interval_seconds, stop),
            name="attendance-queue-sync",
            daemon=True,
        )
        self._thread.start()

    def stop_background_sync(self, timeout: Optional[float] = None) -> None:
        """Stop the background loop; an in-flight background pass ends after its current item.

        Manual and reconnect-triggered passes are unaffected.
        """

        if self._thread_stop is not None:
            self._thread_stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        self._thread_stop = None

    def _background_loop(self, interval_seconds: float, stop: threading.Event) -> None:
        while not stop.wait(interval_seconds):
            if self._online is False:
                continue
            try:
                self._reconcile(stop)
            except QueueStorageError:
                logger.exception("Background reconciliation could not read the queue")


__all__ = ["DEFAULT_MAX_CORRUPT_READS", "QueueReconciler", "ReconcileResult", "RejectionHandler"]
