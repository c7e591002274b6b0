"""Tests for queue reconciliation."""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone

import pytest

from attendance.attempts import AttendanceAttempt, Direction, GeoPoint, NetworkIdentity
from attendance.outcomes import Admitted, ErrorCode, Rejected
from offline_queue.reconciler import QueueReconciler
from offline_queue.store import PendingAttemptStore
from offline_queue.transport import TransportFailure

WHEN = datetime(2026, 3, 2, 5, 0, tzinfo=timezone.utc)


def _attempt(direction=Direction.CHECK_IN, user_id="7"):
    return AttendanceAttempt(
        user_id=user_id,
        embedding=tuple([0.05] * 128),
        location=GeoPoint(25.2, 55.27),
        network=NetworkIdentity("OfficeNet"),
        direction=direction,
    )


def _admitted(direction="check_in"):
    return Admitted(attendance_id=1, status="present", time=WHEN, direction=direction)


class ScriptedTransport:
    """Replies with queued results in order and records what was submitted."""

    def __init__(self, *results):
        self.results = list(results)
        self.submitted = []

    def submit(self, attempt):
        self.submitted.append(attempt)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def store(tmp_path):
    with PendingAttemptStore(tmp_path / "queue.sqlite3") as store:
        yield store


def test_admitted_entries_are_removed_in_order(store):
    store.enqueue(_attempt(Direction.CHECK_IN))
    store.enqueue(_attempt(Direction.CHECK_OUT))
    transport = ScriptedTransport(_admitted(), _admitted("check_out"))

    result = QueueReconciler(store, transport).reconcile()

    assert [a.direction for a in transport.submitted] == [Direction.CHECK_IN, Direction.CHECK_OUT]
    assert (result.total, result.succeeded, result.failed) == (2, 2, 0)
    assert store.count() == 0


def test_rejections_are_removed_and_surfaced(store):
    pending = store.enqueue(_attempt())
    rejection = Rejected(ErrorCode.LOCATION_INVALID, "You are 900m away. Max allowed: 100m.")
    surfaced = []

    result = QueueReconciler(
        store, ScriptedTransport(rejection), on_rejection=lambda entry, outcome: surfaced.append((entry.id, outcome))
    ).reconcile()

    assert result.rejected == 1
    assert result.failed == 1
    assert result.errors == {pending.id: "LOCATION_INVALID: You are 900m away. Max allowed: 100m."}
    assert surfaced == [(pending.id, rejection)]
    assert store.count() == 0


def test_transport_failures_stay_queued_with_retry_count(store):
    pending = store.enqueue(_attempt())

    result = QueueReconciler(store, ScriptedTransport(TransportFailure("timeout"))).reconcile()

    assert result.retrying == 1
    entry = store.get(pending.id)
    assert entry.retry_count == 1
    assert entry.last_error == "timeout"


def test_processing_continues_past_failures(store):
    first = store.enqueue(_attempt(user_id="1"))
    second = store.enqueue(_attempt(user_id="2"))
    third = store.enqueue(_attempt(user_id="3"))
    transport = ScriptedTransport(
        TransportFailure("HTTP 503", 503),
        RuntimeError("socket exploded"),
        _admitted(),
    )

    result = QueueReconciler(store, transport).reconcile()

    assert (result.succeeded, result.retrying) == (1, 2)
    assert [entry.id for entry in store.list_pending()] == [first.id, second.id]
    assert store.get(third.id) is None
    assert "RuntimeError" in store.get(second.id).last_error


def test_corrupt_entries_are_kept_and_skipped(tmp_path):
    path = tmp_path / "corrupt.sqlite3"
    with PendingAttemptStore(path) as store:
        broken = store.enqueue(_attempt(user_id="1"))
        store.enqueue(_attempt(user_id="2"))
    with sqlite3.connect(path) as conn:
        conn.execute("UPDATE pending_attendance SET payload = 'garbage' WHERE id = ?", (broken.id,))

    with PendingAttemptStore(path) as store:
        transport = ScriptedTransport(_admitted())
        result = QueueReconciler(store, transport).reconcile()

        assert result.corrupt == 1
        assert result.succeeded == 1
        assert [a.user_id for a in transport.submitted] == ["2"]
        assert store.get(broken.id).retry_count == 1


def test_rejection_handler_errors_do_not_stop_the_pass(store):
    store.enqueue(_attempt(user_id="1"))
    store.enqueue(_attempt(user_id="2"))

    def _explode(entry, outcome):
        raise RuntimeError("ui gone")

    transport = ScriptedTransport(Rejected(ErrorCode.FACE_MISMATCH, "nope"), _admitted())
    result = QueueReconciler(store, transport, on_rejection=_explode).reconcile()

    assert (result.rejected, result.succeeded) == (1, 1)
    assert store.count() == 0


def test_empty_queue_is_a_no_op(store):
    transport = ScriptedTransport()

    result = QueueReconciler(store, transport).reconcile()

    assert result.total == 0
    assert not result.skipped
    assert transport.submitted == []


def test_overlapping_passes_are_skipped(store):
    store.enqueue(_attempt())
    entered = threading.Event()
    release = threading.Event()

    class BlockingTransport:
        def submit(self, attempt):
            entered.set()
            release.wait(5)
            return _admitted()

    reconciler = QueueReconciler(store, BlockingTransport())
    results = []
    worker = threading.Thread(target=lambda: results.append(reconciler.reconcile()))
    worker.start()
    assert entered.wait(5)

    overlapping = reconciler.reconcile()
    release.set()
    worker.join(5)

    assert overlapping.skipped
    assert overlapping.total == 0
    assert results[0].succeeded == 1
    assert store.count() == 0


def test_reconnect_triggers_a_pass_only_on_transition(store):
    store.enqueue(_attempt())
    transport = ScriptedTransport(TransportFailure("offline"), _admitted())
    reconciler = QueueReconciler(store, transport)

    assert reconciler.on_connectivity_change(False) is None
    first = reconciler.on_connectivity_change(True)
    assert first is not None and first.retrying == 1

    # Still online: no new pass.
    assert reconciler.on_connectivity_change(True) is None
    assert len(transport.submitted) == 1

    reconciler.on_connectivity_change(False)
    second = reconciler.on_connectivity_change(True)
    assert second.succeeded == 1
    assert store.count() == 0


def test_reconnect_with_empty_queue_does_nothing(store):
    transport = ScriptedTransport()
    reconciler = QueueReconciler(store, transport)

    assert reconciler.on_connectivity_change(True) is None
    assert reconciler.is_online is True


def test_background_sync_drains_queue(store):
    store.enqueue(_attempt())
    drained = threading.Event()

    class SignallingTransport:
        def submit(self, attempt):
            drained.set()
            return _admitted()

    reconciler = QueueReconciler(store, SignallingTransport())
    reconciler.start_background_sync(interval_seconds=0.01)
    try:
        assert drained.wait(5)
    finally:
        reconciler.stop_background_sync(timeout=5)

    assert store.count() == 0


def test_manual_pass_works_after_background_sync_stops(store):
    transport = ScriptedTransport(_admitted())
    reconciler = QueueReconciler(store, transport)
    reconciler.start_background_sync(interval_seconds=60)
    reconciler.stop_background_sync(timeout=5)

    store.enqueue(_attempt())
    result = reconciler.reconcile()

    assert (result.total, result.succeeded) == (1, 1)
    assert store.count() == 0


def test_reconnect_works_after_background_sync_stops(store):
    reconciler = QueueReconciler(store, ScriptedTransport(_admitted()))
    reconciler.start_background_sync(interval_seconds=60)
    reconciler.stop_background_sync(timeout=5)
    reconciler.on_connectivity_change(False)

    store.enqueue(_attempt())
    result = reconciler.on_connectivity_change(True)

    assert result.succeeded == 1
    assert store.count() == 0


def test_background_sync_can_be_restarted(store):
    drained = threading.Event()

    class SignallingTransport:
        def submit(self, attempt):
            drained.set()
            return _admitted()

    reconciler = QueueReconciler(store, SignallingTransport())
    reconciler.start_background_sync(interval_seconds=60)
    reconciler.stop_background_sync(timeout=5)

    store.enqueue(_attempt())
    reconciler.start_background_sync(interval_seconds=0.01)
    try:
        assert drained.wait(5)
    finally:
        reconciler.stop_background_sync(timeout=5)

    assert store.count() == 0


def test_stopped_background_pass_counts_only_attempted_entries(store):
    store.enqueue(_attempt(user_id="1"))
    store.enqueue(_attempt(user_id="2"))
    entered = threading.Event()
    release = threading.Event()
    results = []

    class BlockingTransport:
        def submit(self, attempt):
            entered.set()
            release.wait(5)
            return _admitted()

    reconciler = QueueReconciler(store, BlockingTransport())
    original = reconciler._reconcile

    def _recording(stop):
        result = original(stop)
        results.append(result)
        return result

    reconciler._reconcile = _recording
    reconciler.start_background_sync(interval_seconds=0.01)
    assert entered.wait(5)

    stopper = threading.Thread(target=reconciler.stop_background_sync, kwargs={"timeout": 5})
    stopper.start()
    # Let the stop request land before the in-flight submit returns.
    while reconciler._thread_stop is not None and not reconciler._thread_stop.is_set():
        pass
    release.set()
    stopper.join(5)

    assert results[0].total == 1
    assert results[0].succeeded == 1
    assert [entry.user_id for entry in store.list_pending()] == ["2"]


def _corrupt_store(path):
    with PendingAttemptStore(path) as store:
        broken = store.enqueue(_attempt(user_id="1"))
    with sqlite3.connect(path) as conn:
        conn.execute("UPDATE pending_attendance SET payload = 'garbage' WHERE id = ?", (broken.id,))
    return broken


def test_corrupt_entries_are_quarantined_after_repeated_failures(tmp_path):
    path = tmp_path / "poisoned.sqlite3"
    broken = _corrupt_store(path)

    with PendingAttemptStore(path) as store:
        reconciler = QueueReconciler(store, ScriptedTransport(), max_corrupt_reads=3)
        passes = [reconciler.reconcile() for _ in range(3)]

        assert [p.quarantined for p in passes] == [0, 0, 1]
        assert all(p.corrupt == 1 for p in passes)
        assert store.count() == 0
        (row,) = store.list_quarantined()
        assert row["id"] == broken.id
        assert row["retry_count"] == 3
        assert "corrupt" in row["reason"]

        assert reconciler.reconcile().total == 0


def test_max_corrupt_reads_must_be_positive(store):
    with pytest.raises(ValueError):
        QueueReconciler(store, ScriptedTransport(), max_corrupt_reads=0)
