"""Detected-face geometry as reported by the on-device face detector.

The detector hands us named landmark points, contour polylines, head Euler
angles and a bounding box in image pixel coordinates. These types carry that
payload into :mod:`recognition.extraction` without depending on Django so the
same code runs on capture clients and on the server.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)


class LandmarkType(str, Enum):
    """Anatomical points the detector may report for a face."""

    LEFT_EYE = "leftEye"
    RIGHT_EYE = "rightEye"
    LEFT_EAR = "leftEar"
    RIGHT_EAR = "rightEar"
    LEFT_CHEEK = "leftCheek"
    RIGHT_CHEEK = "rightCheek"
    NOSE_BASE = "noseBase"
    LEFT_MOUTH = "leftMouth"
    RIGHT_MOUTH = "rightMouth"
    BOTTOM_MOUTH = "bottomMouth"


class ContourType(str, Enum):
    """Polylines the detector may report for a face."""

    FACE = "face"
    LEFT_EYEBROW_TOP = "leftEyebrowTop"
    LEFT_EYEBROW_BOTTOM = "leftEyebrowBottom"
    RIGHT_EYEBROW_TOP = "rightEyebrowTop"
    RIGHT_EYEBROW_BOTTOM = "rightEyebrowBottom"
    LEFT_EYE = "leftEye"
    RIGHT_EYE = "rightEye"
    UPPER_LIP_TOP = "upperLipTop"
    UPPER_LIP_BOTTOM = "upperLipBottom"
    LOWER_LIP_TOP = "lowerLipTop"
    LOWER_LIP_BOTTOM = "lowerLipBottom"
    NOSE_BRIDGE = "noseBridge"
    NOSE_BOTTOM = "noseBottom"
    LEFT_CHEEK = "leftCheek"
    RIGHT_CHEEK = "rightCheek"


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def midpoint(self, other: "Point") -> "Point":
        return Point((self.x + other.x) / 2.0, (self.y + other.y) / 2.0)

    @classmethod
    def from_raw(cls, raw: Any) -> "Point":
        """Build a point from ``{"x": .., "y": ..}`` or an ``[x, y]`` pair."""

        if isinstance(raw, Mapping):
            return cls(float(raw["x"]), float(raw["y"]))
        x, y = raw
        return cls(float(x), float(y))


@dataclass(frozen=True, slots=True)
class BoundingBox:
    left: float
    top: float
    width: float
    height: float

    @property
    def center(self) -> Point:
        return Point(self.left + self.width / 2.0, self.top + self.height / 2.0)


@dataclass(frozen=True)
class FaceGeometry:
    """One detected face: box, landmarks, contours and head pose."""

    bounding_box: BoundingBox
    landmarks: Mapping[LandmarkType, Point] = field(default_factory=dict)
    contours: Mapping[ContourType, tuple[Point, ...]] = field(default_factory=dict)
    head_euler_x: float = 0.0
    head_euler_y: float = 0.0
    head_euler_z: float = 0.0

    def landmark(self, kind: LandmarkType) -> Point | None:
        return self.landmarks.get(kind)

    def contour(self, kind: ContourType) -> tuple[Point, ...]:
        return tuple(self.contours.get(kind, ()))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FaceGeometry":
        """Parse detector JSON into a :class:`FaceGeometry`.

        Unknown landmark or contour names are ignored so newer detector
        builds that report extra points keep working.

        Raises:
            ValueError: when the bounding box is missing or a coordinate is
                not numeric.
        """

        raw_box = payload.get("bounding_box")
        if not isinstance(raw_box, Mapping):
            raise ValueError("Face geometry requires a 'bounding_box' object.")
        try:
            box = BoundingBox(
                left=float(raw_box.get("left", 0.0)),
                top=float(raw_box.get("top", 0.0)),
                width=float(raw_box["width"]),
                height=float(raw_box["height"]),
            )
            landmarks = dict(_parse_named(payload.get("landmarks") or {}, LandmarkType, Point.from_raw))
            contours = dict(
                _parse_named(
                    payload.get("contours") or {},
                    ContourType,
                    lambda points: tuple(Point.from_raw(point) for point in points),
                )
            )
            angles = payload.get("head_euler_angles") or {}
            return cls(
                bounding_box=box,
                landmarks=landmarks,
                contours=contours,
                head_euler_x=float(angles.get("x", 0.0)),
                head_euler_y=float(angles.get("y", 0.0)),
                head_euler_z=float(angles.get("z", 0.0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid face geometry payload: {exc}") from exc


def _parse_named(raw: Mapping[str, Any], enum_cls, convert) -> Iterable[tuple[Any, Any]]:
    for name, value in raw.items():
        try:
            kind = enum_cls(name)
        except ValueError:
            logger.debug("Ignoring unknown %s %r", enum_cls.__name__, name)
            continue
        yield kind, convert(value)


__all__ = [
    "BoundingBox",
    "ContourType",
    "FaceGeometry",
    "LandmarkType",
    "Point",
]
