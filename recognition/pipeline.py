"""Embedding comparison utilities.

This module centralises the pure functions that score an incoming face
embedding against enrolled templates so they can be exercised in isolation
with synthetic vectors. Errors raised here signal programming or data
integrity problems upstream (wrong vector width, empty enrollment) rather
than user-facing outcomes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

# Maximum Euclidean distance between unit vectors for a match.
DEFAULT_MATCH_THRESHOLD = 0.8


class ComparatorError(ValueError):
    """Base class for invalid comparator input."""


class DimensionMismatch(ComparatorError):
    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Embedding dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class EmptyInput(ComparatorError):
    """Raised when averaging an empty list of embeddings."""


class NoEnrolledTemplates(ComparatorError):
    """Raised when a probe is compared against an empty template set."""


@dataclass(frozen=True)
class MatchResult:
    is_match: bool
    best_distance: float
    best_cosine: float
    matched_index: int
    total_compared: int


def _as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).reshape(-1)


def _check_dimensions(a: np.ndarray, b: np.ndarray) -> None:
    if a.size != b.size:
        raise DimensionMismatch(a.size, b.size)


def euclidean_distance(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Return the L2 distance between two embeddings of equal width."""

    left, right = _as_vector(a), _as_vector(b)
    _check_dimensions(left, right)
    return float(np.linalg.norm(left - right))


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Return cosine similarity in ``[-1, 1]``, or ``0.0`` when either norm is zero."""

    left, right = _as_vector(a), _as_vector(b)
    _check_dimensions(left, right)
    left_norm = float(np.linalg.norm(left))
    right_norm = float(np.linalg.norm(right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    similarity = float(np.dot(left, right) / (left_norm * right_norm))
    return max(-1.0, min(1.0, similarity))


def average_embeddings(embeddings: Sequence[Sequence[float] | np.ndarray]) -> np.ndarray:
    """Return the element-wise mean of ``embeddings``.

    A single embedding is returned unchanged (as a float vector), which keeps
    single-pose enrollments bit-identical to what the client submitted.
    """

    if len(embeddings) == 0:
        raise EmptyInput("Cannot average an empty list of embeddings.")

    vectors = [_as_vector(embedding) for embedding in embeddings]
    first = vectors[0]
    if len(vectors) == 1:
        return first
    for vector in vectors[1:]:
        _check_dimensions(first, vector)
    return np.mean(np.stack(vectors), axis=0)


def compare_against_all(
    incoming: Sequence[float] | np.ndarray,
    enrolled: Sequence[Sequence[float] | np.ndarray],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> MatchResult:
    """Score ``incoming`` against every enrolled template.

    The template with the smallest Euclidean distance wins; ties keep the
    earliest index. ``is_match`` is true only when that distance is strictly
    below ``threshold``.

    Raises:
        NoEnrolledTemplates: ``enrolled`` is empty.
        DimensionMismatch: a template's width differs from ``incoming``.
    """

    if len(enrolled) == 0:
        raise NoEnrolledTemplates("No enrolled face templates to compare against.")

    probe = _as_vector(incoming)
    best_index = -1
    best_distance = math.inf
    best_cosine = 0.0

    for index, template in enumerate(enrolled):
        distance = euclidean_distance(probe, template)
        if distance < best_distance:
            best_distance = distance
            best_index = index
            best_cosine = cosine_similarity(probe, template)

    is_match = is_within_distance_threshold(best_distance, threshold)
    logger.debug(
        "Compared probe against %d templates: best index %d distance %.4f (threshold %.4f)",
        len(enrolled),
        best_index,
        best_distance,
        threshold,
    )
    return MatchResult(
        is_match=is_match,
        best_distance=best_distance,
        best_cosine=best_cosine,
        matched_index=best_index,
        total_compared=len(enrolled),
    )


def is_within_distance_threshold(distance: Optional[float], threshold: float) -> bool:
    """Return ``True`` when ``distance`` is strictly below ``threshold``."""

    if distance is None:
        return False

    if math.isnan(distance):
        return False

    return bool(distance < threshold)


__all__ = [
    "DEFAULT_MATCH_THRESHOLD",
    "ComparatorError",
    "DimensionMismatch",
    "EmptyInput",
    "MatchResult",
    "NoEnrolledTemplates",
    "average_embeddings",
    "compare_against_all",
    "cosine_similarity",
    "euclidean_distance",
    "is_within_distance_threshold",
]
