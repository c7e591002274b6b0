"""Admission outcomes and their wire format.

Rejections are values, not exceptions: the offline queue decides whether to
drop or keep an entry by inspecting the outcome kind. Both outcome types
render the JSON body the API returns and can be decoded back on the client.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union


class ErrorCode(str, Enum):
    LOCATION_INVALID = "LOCATION_INVALID"
    FACE_MISMATCH = "FACE_MISMATCH"
    WIFI_INVALID = "WIFI_INVALID"
    NO_FACE_PROFILE = "NO_FACE_PROFILE"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    NO_ACTIVE_CHECKIN = "NO_ACTIVE_CHECKIN"
    UNAUTHORIZED = "UNAUTHORIZED"
    # Malformed request body; produced by request validation, never by the engine.
    INVALID_REQUEST = "INVALID_REQUEST"


@dataclass(frozen=True)
class Admitted:
    attendance_id: int
    status: str
    time: datetime
    direction: str
    total_minutes: Optional[int] = None

    def to_response(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "attendance_id": self.attendance_id,
            "status": self.status,
            "time": self.time.isoformat(),
            "type": self.direction,
        }
        if self.total_minutes is not None:
            data["total_minutes"] = self.total_minutes
        return {"success": True, "data": data}


@dataclass(frozen=True)
class Rejected:
    code: ErrorCode
    message: str

    def to_response(self) -> dict[str, Any]:
        return {"success": False, "error": self.code.value, "message": self.message}


Outcome = Union[Admitted, Rejected]


def outcome_from_response(body: Mapping[str, Any]) -> Outcome:
    """Decode an API response body into an outcome.

    Unknown error codes decode as ``INVALID_REQUEST`` so a newer server can
    never make an old client treat a rejection as retryable.

    Raises:
        ValueError: ``body`` is a success response without usable ``data``.
    """

    if body.get("success") is True:
        data = body.get("data")
        if not isinstance(data, Mapping):
            raise ValueError("Success response is missing 'data'.")
        try:
            return Admitted(
                attendance_id=int(data["attendance_id"]),
                status=str(data["status"]),
                time=datetime.fromisoformat(str(data["time"]).replace("Z", "+00:00")),
                direction=str(data.get("type", "")),
                total_minutes=data.get("total_minutes"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed success response: {exc}") from exc

    raw_code = body.get("error")
    try:
        code = ErrorCode(raw_code)
    except ValueError:
        code = ErrorCode.INVALID_REQUEST
    message = body.get("message") or (raw_code if isinstance(raw_code, str) else "") or code.value
    return Rejected(code=code, message=str(message))


__all__ = ["Admitted", "ErrorCode", "Outcome", "Rejected", "outcome_from_response"]
