"""Command-line client: queueing and listing attempts offline."""

from __future__ import annotations

import json
import logging

import pytest
import requests

import attendance_client
from conftest import unit_vector
from offline_queue.store import PendingAttemptStore


@pytest.fixture
def embedding_file(tmp_path):
    path = tmp_path / "vector.json"
    path.write_text(json.dumps({"embedding": unit_vector(5).tolist()}))
    return path


@pytest.fixture
def queue_args(tmp_path, monkeypatch):
    monkeypatch.delenv("PRESENCE_GATE_QUEUE_KEY", raising=False)
    return ["--queue", str(tmp_path / "queue.sqlite3")]


def _last_message(caplog):
    return caplog.records[-1].getMessage()


def test_enqueue_then_pending_lists_the_attempt(queue_args, embedding_file, caplog):
    caplog.set_level(logging.INFO, logger="attendance_client")

    status = attendance_client.main(
        queue_args
        + [
            "enqueue",
            "--user-id", "7",
            "--embedding", str(embedding_file),
            "--lat", "25.2048",
            "--lng", "55.2708",
            "--ssid", "OfficeNet",
            "--type", "check_out",
        ]
    )
    assert status == 0

    assert attendance_client.main(queue_args + ["--json", "pending"]) == 0
    rows = json.loads(_last_message(caplog))
    assert len(rows) == 1
    assert rows[0]["user_id"] == "7"
    assert rows[0]["type"] == "check_out"
    assert rows[0]["retry_count"] == 0


def test_wrong_sized_embedding_is_refused(queue_args, tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="attendance_client")
    short = tmp_path / "short.json"
    short.write_text(json.dumps([0.1, 0.2, 0.3]))

    status = attendance_client.main(
        queue_args
        + ["enqueue", "--user-id", "7", "--embedding", str(short), "--lat", "1", "--lng", "2"]
    )

    assert status == 1
    assert "128" in _last_message(caplog)


def test_empty_queue_is_reported(queue_args, caplog):
    caplog.set_level(logging.INFO, logger="attendance_client")

    assert attendance_client.main(queue_args + ["pending"]) == 0
    assert _last_message(caplog) == "No pending attendance attempts."


class StubResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


class StubSession:
    """Stands in for ``requests.Session``; replies from a script in order."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.posted = []

    def __call__(self):
        return self

    def post(self, url, json=None, headers=None, timeout=None):
        self.posted.append({"url": url, "json": json, "headers": headers})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


ADMITTED = StubResponse(
    200,
    {
        "success": True,
        "data": {"attendance_id": 41, "status": "present", "time": "2026-03-02T05:00:00+00:00", "type": "check_in"},
    },
)


@pytest.fixture
def server_args(queue_args):
    return ["--url", "https://attendance.example.com", "--token", "abc"] + queue_args


@pytest.fixture
def attempt_args(embedding_file):
    return ["--user-id", "7", "--embedding", str(embedding_file), "--lat", "25.2048", "--lng", "55.2708"]


def _install_session(monkeypatch, *replies):
    session = StubSession(*replies)
    monkeypatch.setattr(requests, "Session", session)
    return session


def _queued(queue_args):
    with PendingAttemptStore(queue_args[1]) as store:
        return store.list_pending()


def test_submit_queues_attempt_when_server_is_unreachable(
    monkeypatch, server_args, attempt_args, queue_args, caplog
):
    caplog.set_level(logging.INFO, logger="attendance_client")
    session = _install_session(monkeypatch, requests.exceptions.ConnectionError("no route to host"))

    status = attendance_client.main(server_args + ["submit"] + attempt_args)

    assert status == 0
    assert session.posted[0]["url"] == "https://attendance.example.com/api/v1/attendance/verify/"
    assert session.posted[0]["headers"]["Authorization"] == "Bearer abc"
    assert "result: queued" in _last_message(caplog)
    (entry,) = _queued(queue_args)
    assert entry.user_id == "7"


def test_submit_rejection_is_reported_and_not_queued(
    monkeypatch, server_args, attempt_args, queue_args, caplog
):
    caplog.set_level(logging.INFO, logger="attendance_client")
    _install_session(
        monkeypatch,
        StubResponse(400, {"success": False, "error": "WIFI_INVALID", "message": "Unauthorized Wi-Fi."}),
    )

    status = attendance_client.main(server_args + ["submit"] + attempt_args)

    assert status == 2
    assert "error: WIFI_INVALID" in _last_message(caplog)
    assert _queued(queue_args) == []


def test_submit_admitted_exits_cleanly(monkeypatch, server_args, attempt_args, queue_args, caplog):
    caplog.set_level(logging.INFO, logger="attendance_client")
    _install_session(monkeypatch, ADMITTED)

    assert attendance_client.main(server_args + ["submit"] + attempt_args) == 0
    assert "result: admitted" in _last_message(caplog)
    assert _queued(queue_args) == []


def test_reconcile_drains_queue_and_reports_summary(
    monkeypatch, server_args, attempt_args, queue_args, caplog
):
    caplog.set_level(logging.INFO, logger="attendance_client")
    for _ in range(2):
        assert attendance_client.main(queue_args + ["enqueue"] + attempt_args) == 0
    session = _install_session(
        monkeypatch,
        ADMITTED,
        StubResponse(400, {"success": False, "error": "ALREADY_CHECKED_IN", "message": "Already checked in."}),
    )

    status = attendance_client.main(server_args + ["--json", "reconcile"])

    assert status == 2
    assert len(session.posted) == 2
    summary = json.loads(_last_message(caplog))
    assert (summary["total"], summary["succeeded"], summary["rejected"], summary["remaining"]) == (2, 1, 1, 0)
    assert any(value.startswith("ALREADY_CHECKED_IN") for key, value in summary.items() if key.startswith("rejected_"))
    assert _queued(queue_args) == []


def test_reconcile_requires_a_server_url(monkeypatch, queue_args):
    monkeypatch.delenv("PRESENCE_GATE_URL", raising=False)

    with pytest.raises(SystemExit):
        attendance_client.main(queue_args + ["reconcile"])
