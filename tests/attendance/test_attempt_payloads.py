"""Tests for attendance attempt payloads and outcome decoding."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from attendance.attempts import AttendanceAttempt, Direction, GeoPoint, InvalidAttempt, NetworkIdentity
from attendance.outcomes import Admitted, ErrorCode, Rejected, outcome_from_response


def _payload(**overrides):
    payload = {
        "user_id": "7",
        "face_embedding": [0.01] * 128,
        "location": {"lat": 25.2, "lng": 55.27},
        "wifi_info": {"ssid": '"OfficeNet"', "bssid": "aa:bb:cc:dd:ee:ff"},
        "type": "check_in",
        "client_timestamp": "2026-03-02T05:10:00Z",
    }
    payload.update(overrides)
    return payload


def test_payload_round_trip_preserves_fields():
    attempt = AttendanceAttempt.from_payload(_payload())

    assert attempt.direction is Direction.CHECK_IN
    assert attempt.location == GeoPoint(25.2, 55.27)
    assert attempt.client_timestamp == datetime(2026, 3, 2, 5, 10, tzinfo=timezone.utc)
    assert AttendanceAttempt.from_payload(attempt.to_payload()) == attempt


def test_ssid_quotes_are_stripped():
    assert NetworkIdentity('"OfficeNet"').normalized_ssid == "OfficeNet"
    assert NetworkIdentity(None).normalized_ssid is None


def test_missing_wifi_info_is_allowed():
    payload = _payload()
    del payload["wifi_info"]

    assert AttendanceAttempt.from_payload(payload).network == NetworkIdentity()


@pytest.mark.parametrize(
    "overrides",
    [
        {"face_embedding": [0.01] * 127},
        {"face_embedding": [0.01] * 127 + [float("inf")]},
        {"face_embedding": "0.1,0.2"},
        {"location": {"lat": 91.0, "lng": 0.0}},
        {"location": {"lat": "north"}},
        {"type": "lunch_break"},
        {"user_id": ""},
        {"client_timestamp": "yesterday"},
    ],
)
def test_invalid_payloads_are_rejected(overrides):
    with pytest.raises(InvalidAttempt):
        AttendanceAttempt.from_payload(_payload(**overrides))


def test_missing_field_is_rejected():
    payload = _payload()
    del payload["type"]

    with pytest.raises(InvalidAttempt):
        AttendanceAttempt.from_payload(payload)


def test_admitted_response_shape():
    outcome = Admitted(
        attendance_id=4,
        status="present",
        time=datetime(2026, 3, 2, 5, 0, tzinfo=timezone.utc),
        direction="check_out",
        total_minutes=480,
    )

    body = outcome.to_response()

    assert body == {
        "success": True,
        "data": {
            "attendance_id": 4,
            "status": "present",
            "time": "2026-03-02T05:00:00+00:00",
            "type": "check_out",
            "total_minutes": 480,
        },
    }
    assert outcome_from_response(body) == outcome


def test_rejected_response_shape():
    outcome = Rejected(ErrorCode.WIFI_INVALID, "Wi-Fi Guest not authorized.")

    assert outcome.to_response() == {
        "success": False,
        "error": "WIFI_INVALID",
        "message": "Wi-Fi Guest not authorized.",
    }
    assert outcome_from_response(outcome.to_response()) == outcome


def test_unknown_error_code_decodes_as_invalid_request():
    outcome = outcome_from_response({"success": False, "error": "SOMETHING_NEW", "message": "nope"})

    assert outcome == Rejected(ErrorCode.INVALID_REQUEST, "nope")


def test_malformed_success_is_an_error():
    with pytest.raises(ValueError):
        outcome_from_response({"success": True, "data": {"status": "present"}})
