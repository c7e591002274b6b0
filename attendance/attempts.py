"""The attendance attempt: the unit a capture client submits for admission.

These types are shared by the server (which decides on an attempt) and the
offline queue (which stores and replays one), so they stay free of Django.
:meth:`AttendanceAttempt.to_payload` produces exactly the JSON request body
accepted by ``POST /api/v1/attendance/verify/``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from recognition.extraction import EMBEDDING_DIMENSION


class InvalidAttempt(ValueError):
    """Raised when a payload cannot be turned into an :class:`AttendanceAttempt`."""


class Direction(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class NetworkIdentity:
    ssid: Optional[str] = None
    bssid: Optional[str] = None

    @property
    def normalized_ssid(self) -> Optional[str]:
        """SSID with the surrounding quotes some platforms add removed."""

        if self.ssid is None:
            return None
        return self.ssid.strip().strip('"')

    def to_dict(self) -> dict[str, Optional[str]]:
        return {"ssid": self.ssid, "bssid": self.bssid}


@dataclass(frozen=True)
class AttendanceAttempt:
    user_id: str
    embedding: tuple[float, ...]
    location: GeoPoint
    network: NetworkIdentity
    direction: Direction
    client_timestamp: Optional[datetime] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user_id": self.user_id,
            "face_embedding": list(self.embedding),
            "location": self.location.to_dict(),
            "wifi_info": self.network.to_dict(),
            "type": self.direction.value,
        }
        if self.client_timestamp is not None:
            payload["client_timestamp"] = self.client_timestamp.isoformat()
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AttendanceAttempt":
        """Decode a request body, rejecting anything the engine could not score."""

        try:
            user_id = payload["user_id"]
            raw_embedding = payload["face_embedding"]
            raw_location = payload["location"]
            raw_direction = payload["type"]
        except (KeyError, TypeError) as exc:
            raise InvalidAttempt(f"Missing attempt field: {exc}") from exc

        if user_id is None or str(user_id) == "":
            raise InvalidAttempt("user_id must not be empty.")

        try:
            direction = Direction(raw_direction)
        except ValueError as exc:
            raise InvalidAttempt(f"type must be one of {[d.value for d in Direction]}.") from exc

        try:
            location = GeoPoint(float(raw_location["lat"]), float(raw_location["lng"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidAttempt("location must provide numeric 'lat' and 'lng'.") from exc
        if not (-90.0 <= location.lat <= 90.0 and -180.0 <= location.lng <= 180.0):
            raise InvalidAttempt("location is outside valid latitude/longitude ranges.")

        raw_network = payload.get("wifi_info") or {}
        if not isinstance(raw_network, Mapping):
            raise InvalidAttempt("wifi_info must be an object.")
        network = NetworkIdentity(
            ssid=_optional_str(raw_network.get("ssid")),
            bssid=_optional_str(raw_network.get("bssid")),
        )

        return cls(
            user_id=str(user_id),
            embedding=_coerce_embedding(raw_embedding),
            location=location,
            network=network,
            direction=direction,
            client_timestamp=_parse_timestamp(payload.get("client_timestamp")),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _coerce_embedding(raw: Any) -> tuple[float, ...]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise InvalidAttempt("face_embedding must be a list of numbers.")
    try:
        values = tuple(float(value) for value in raw)
    except (TypeError, ValueError) as exc:
        raise InvalidAttempt("face_embedding must contain only numeric values.") from exc
    if len(values) != EMBEDDING_DIMENSION:
        raise InvalidAttempt(
            f"face_embedding must have {EMBEDDING_DIMENSION} values, got {len(values)}."
        )
    if not all(math.isfinite(value) for value in values):
        raise InvalidAttempt("face_embedding must not contain NaN or infinite values.")
    return values


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    if isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidAttempt("client_timestamp must be an ISO-8601 timestamp.") from exc


__all__ = [
    "AttendanceAttempt",
    "Direction",
    "GeoPoint",
    "InvalidAttempt",
    "NetworkIdentity",
]
