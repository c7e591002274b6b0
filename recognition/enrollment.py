"""Enrollment service: the only writer of :class:`recognition.models.FaceProfile`."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np
from django.conf import settings
from django.db import transaction

from recognition.extraction import EMBEDDING_DIMENSION, l2_normalize
from recognition.models import FaceProfile
from recognition.pipeline import average_embeddings

logger = logging.getLogger(__name__)

MAX_POSES = 10


class EnrollmentError(ValueError):
    """Raised when submitted enrollment vectors are unusable."""


def coerce_embedding(raw: Any) -> np.ndarray:
    """Convert one submitted embedding into a validated float vector."""

    if not isinstance(raw, (list, tuple, np.ndarray)):
        raise EnrollmentError("Each face embedding must be a list of numbers.")
    try:
        vector = np.array([float(value) for value in raw], dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise EnrollmentError("Face embeddings must contain only numeric values.") from exc
    if vector.size != EMBEDDING_DIMENSION:
        raise EnrollmentError(
            f"Face embeddings must have {EMBEDDING_DIMENSION} values, got {vector.size}."
        )
    if not np.all(np.isfinite(vector)):
        raise EnrollmentError("Face embeddings must not contain NaN or infinite values.")
    return vector


def enroll(
    user,
    embedding: Optional[Sequence[float]] = None,
    embeddings: Optional[Sequence[Sequence[float]]] = None,
) -> FaceProfile:
    """Create or replace ``user``'s face profile.

    Args:
        user: The user being enrolled.
        embedding: A single template, used when ``embeddings`` is not given.
        embeddings: Multi-pose templates; takes precedence over ``embedding``.

    Returns:
        The saved :class:`FaceProfile`.

    Raises:
        EnrollmentError: no usable vectors were supplied.
    """

    if embeddings is not None and len(embeddings) > 0:
        raw_vectors = list(embeddings)
    elif embedding is not None:
        raw_vectors = [embedding]
    else:
        raise EnrollmentError("Provide 'face_embedding' or 'face_embeddings'.")

    if len(raw_vectors) > MAX_POSES:
        raise EnrollmentError(f"At most {MAX_POSES} poses may be enrolled at once.")

    vectors = [coerce_embedding(raw) for raw in raw_vectors]
    if len(vectors) > 1 and getattr(settings, "RECOGNITION_ENROLLMENT_INCLUDE_MEAN", False):
        mean, degenerate = l2_normalize(average_embeddings(vectors))
        if not degenerate:
            vectors.append(mean)

    with transaction.atomic():
        profile, created = FaceProfile.objects.select_for_update().get_or_create(
            user=user, defaults={"pose_count": 0, "encrypted_embeddings": b""}
        )
        profile.set_embeddings(np.stack(vectors))
        profile.save()

    logger.info(
        "%s face profile for user %s with %d templates",
        "Created" if created else "Replaced",
        user.pk,
        profile.pose_count,
        extra={"event": "face_enrolled", "user_id": user.pk},
    )
    return profile


__all__ = ["EnrollmentError", "coerce_embedding", "enroll"]
