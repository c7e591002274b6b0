"""Deterministic geometric face embeddings.

:func:`extract_embedding` turns one detected face into a fixed-length,
unit-norm vector built from landmark ratios, landmark offsets, head pose, a
coarse outline signature and eyebrow curvature. Nothing here is learned; the
same geometry always yields the same bits, which lets the capture client and
the server agree on a template without shipping a model.

Layout of the vector (before zero padding to :data:`EMBEDDING_DIMENSION`)::

    [ 7 identity ratios | 10 x (dx, dy) landmark offsets | 3 head angles |
      16 x (dx, dy) face-outline samples | 2 eyebrow curvatures ]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from recognition.geometry import ContourType, FaceGeometry, LandmarkType, Point

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSION = 128

# Value used for a ratio whose landmarks were not detected.
NEUTRAL_RATIO = 0.0
# Head Euler angles are reported in degrees; dividing by 90 keeps them near [-1, 1].
HEAD_ANGLE_SCALE = 90.0
CONTOUR_SAMPLES = 16
MIN_EYEBROW_POINTS = 3

LANDMARK_WEIGHT = 0.4
CONTOUR_WEIGHT = 0.6
DEFAULT_MIN_QUALITY = 0.5


@dataclass(frozen=True)
class ExtractionResult:
    """Embedding plus the signals a capture client uses to re-prompt."""

    embedding: np.ndarray
    quality: float
    is_degenerate: bool
    min_quality: float = DEFAULT_MIN_QUALITY

    @property
    def is_low_quality(self) -> bool:
        return self.is_degenerate or self.quality < self.min_quality


def _ratio(numerator: Optional[float], denominator: float) -> float:
    if numerator is None or denominator <= 0:
        return NEUTRAL_RATIO
    return numerator / denominator


def _distance(a: Optional[Point], b: Optional[Point]) -> Optional[float]:
    if a is None or b is None:
        return None
    return a.distance_to(b)


def identity_ratios(face: FaceGeometry) -> list[float]:
    """Return the seven scale-invariant ratios that discriminate identities."""

    width = face.bounding_box.width
    height = face.bounding_box.height
    left_eye = face.landmark(LandmarkType.LEFT_EYE)
    right_eye = face.landmark(LandmarkType.RIGHT_EYE)
    nose = face.landmark(LandmarkType.NOSE_BASE)
    left_mouth = face.landmark(LandmarkType.LEFT_MOUTH)
    right_mouth = face.landmark(LandmarkType.RIGHT_MOUTH)
    bottom_mouth = face.landmark(LandmarkType.BOTTOM_MOUTH)
    left_cheek = face.landmark(LandmarkType.LEFT_CHEEK)
    right_cheek = face.landmark(LandmarkType.RIGHT_CHEEK)
    left_ear = face.landmark(LandmarkType.LEFT_EAR)
    right_ear = face.landmark(LandmarkType.RIGHT_EAR)

    eye_asymmetry = None
    eye_midpoint = None
    if left_eye is not None and right_eye is not None:
        eye_asymmetry = abs(left_eye.y - right_eye.y)
        eye_midpoint = left_eye.midpoint(right_eye)

    cheek_asymmetry = None
    left_cheek_span = _distance(left_cheek, nose)
    right_cheek_span = _distance(right_cheek, nose)
    if left_cheek_span is not None and right_cheek_span is not None:
        cheek_asymmetry = left_cheek_span - right_cheek_span

    ear_spans = [
        span
        for span in (_distance(left_ear, left_eye), _distance(right_ear, right_eye))
        if span is not None
    ]
    ear_to_eye = sum(ear_spans) / len(ear_spans) if ear_spans else None

    return [
        _ratio(_distance(left_eye, right_eye), width),
        _ratio(eye_asymmetry, height),
        _ratio(_distance(nose, bottom_mouth), height),
        _ratio(_distance(eye_midpoint, nose), height),
        _ratio(_distance(left_mouth, right_mouth), width),
        _ratio(cheek_asymmetry, width),
        _ratio(ear_to_eye, width),
    ]


def _offset(point: Point, face: FaceGeometry) -> tuple[float, float]:
    box = face.bounding_box
    center = box.center
    return (
        _ratio(point.x - center.x, box.width),
        _ratio(point.y - center.y, box.height),
    )


def landmark_offsets(face: FaceGeometry) -> list[float]:
    values: list[float] = []
    for kind in LandmarkType:
        point = face.landmark(kind)
        values.extend(_offset(point, face) if point is not None else (0.0, 0.0))
    return values


def head_pose(face: FaceGeometry) -> list[float]:
    return [
        face.head_euler_x / HEAD_ANGLE_SCALE,
        face.head_euler_y / HEAD_ANGLE_SCALE,
        face.head_euler_z / HEAD_ANGLE_SCALE,
    ]


def outline_signature(face: FaceGeometry) -> list[float]:
    """Sample the face outline at evenly spaced indices."""

    points = face.contour(ContourType.FACE)
    if len(points) < CONTOUR_SAMPLES:
        return [0.0] * (CONTOUR_SAMPLES * 2)

    values: list[float] = []
    for i in range(CONTOUR_SAMPLES):
        values.extend(_offset(points[i * len(points) // CONTOUR_SAMPLES], face))
    return values


def _eyebrow_curvature(points: tuple[Point, ...], height: float) -> float:
    if len(points) < MIN_EYEBROW_POINTS:
        return 0.0
    chord_y = (points[0].y + points[-1].y) / 2.0
    return _ratio(chord_y - points[len(points) // 2].y, height)


def eyebrow_curvatures(face: FaceGeometry) -> list[float]:
    height = face.bounding_box.height
    return [
        _eyebrow_curvature(face.contour(ContourType.LEFT_EYEBROW_TOP), height),
        _eyebrow_curvature(face.contour(ContourType.RIGHT_EYEBROW_TOP), height),
    ]


def fit_dimension(values: list[float], dimension: int = EMBEDDING_DIMENSION) -> np.ndarray:
    """Zero-pad or truncate ``values`` to exactly ``dimension`` entries."""

    vector = np.zeros(dimension, dtype=np.float64)
    usable = values[:dimension]
    vector[: len(usable)] = usable
    return vector


def l2_normalize(vector: np.ndarray) -> tuple[np.ndarray, bool]:
    """Return ``(unit_vector, is_degenerate)``; zero vectors pass through."""

    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not np.isfinite(norm):
        return vector, True
    return vector / norm, False


def raw_features(face: FaceGeometry) -> list[float]:
    return (
        identity_ratios(face)
        + landmark_offsets(face)
        + head_pose(face)
        + outline_signature(face)
        + eyebrow_curvatures(face)
    )


def extract_embedding(face: FaceGeometry) -> np.ndarray:
    """Return the unit-norm :data:`EMBEDDING_DIMENSION` vector for ``face``."""

    embedding, _ = l2_normalize(fit_dimension(raw_features(face)))
    return embedding


def embedding_quality(face: FaceGeometry) -> float:
    """Score in ``[0, 1]`` reflecting how much of the face the detector saw."""

    landmarks_present = sum(1 for kind in LandmarkType if face.landmark(kind) is not None)
    contours_present = sum(1 for kind in ContourType if face.contour(kind))
    return LANDMARK_WEIGHT * (landmarks_present / len(LandmarkType)) + CONTOUR_WEIGHT * (
        contours_present / len(ContourType)
    )


def extract_features(
    face: FaceGeometry, *, min_quality: float = DEFAULT_MIN_QUALITY
) -> ExtractionResult:
    """Extract an embedding and report whether the capture should be retried."""

    embedding, degenerate = l2_normalize(fit_dimension(raw_features(face)))
    quality = embedding_quality(face)
    if degenerate:
        logger.warning("Face geometry produced a zero embedding; treating capture as low quality")
    return ExtractionResult(
        embedding=embedding,
        quality=quality,
        is_degenerate=degenerate,
        min_quality=min_quality,
    )


# --- Capture guidance ---

CENTER_X_RANGE = (0.15, 0.85)
CENTER_Y_RANGE = (0.10, 0.90)
FACE_WIDTH_RANGE = (0.10, 0.80)
MOVE_CLOSER_BELOW = 0.15
MAX_YAW_DEGREES = 35.0
MAX_ROLL_DEGREES = 25.0


@dataclass(frozen=True)
class AlignmentResult:
    is_centered: bool
    is_size_ok: bool
    is_head_straight: bool
    face_ratio: float
    instruction: str

    @property
    def is_aligned(self) -> bool:
        return self.is_centered and self.is_size_ok and self.is_head_straight


def assess_alignment(face: FaceGeometry, image_width: float, image_height: float) -> AlignmentResult:
    """Tell the capture client whether the face is framed well enough to embed."""

    if image_width <= 0 or image_height <= 0:
        raise ValueError("Image dimensions must be positive.")

    center = face.bounding_box.center
    center_x = center.x / image_width
    center_y = center.y / image_height
    face_ratio = face.bounding_box.width / image_width

    centered = (
        CENTER_X_RANGE[0] < center_x < CENTER_X_RANGE[1]
        and CENTER_Y_RANGE[0] < center_y < CENTER_Y_RANGE[1]
    )
    size_ok = FACE_WIDTH_RANGE[0] < face_ratio < FACE_WIDTH_RANGE[1]
    straight = abs(face.head_euler_y) < MAX_YAW_DEGREES and abs(face.head_euler_z) < MAX_ROLL_DEGREES

    if not size_ok:
        instruction = "Move closer" if face_ratio < MOVE_CLOSER_BELOW else "Move back"
    elif not centered:
        instruction = "Move face to center"
    elif not straight:
        instruction = "Look straight at camera"
    else:
        instruction = "Hold still"

    return AlignmentResult(
        is_centered=centered,
        is_size_ok=size_ok,
        is_head_straight=straight,
        face_ratio=face_ratio,
        instruction=instruction,
    )


__all__ = [
    "CONTOUR_SAMPLES",
    "EMBEDDING_DIMENSION",
    "AlignmentResult",
    "ExtractionResult",
    "assess_alignment",
    "embedding_quality",
    "extract_embedding",
    "extract_features",
    "fit_dimension",
    "identity_ratios",
    "l2_normalize",
]
