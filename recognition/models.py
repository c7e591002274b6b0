"""Database models for the recognition app."""

from __future__ import annotations

import logging

import numpy as np
from django.conf import settings
from django.db import models

from recognition.extraction import EMBEDDING_DIMENSION
from src.common.crypto import decrypt_face_templates, encrypt_face_templates

logger = logging.getLogger(__name__)


class FaceProfile(models.Model):
    """Enrolled face templates for a single user.

    The templates are one or more unit-norm geometric embeddings captured at
    enrollment (one per pose). They are stored as a single Fernet-encrypted
    ``float64`` matrix and replaced wholesale on re-enrollment.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="face_profile",
        help_text="The user these templates identify.",
    )
    encrypted_embeddings = models.BinaryField(
        help_text="Fernet-encrypted float64 matrix of enrolled embeddings.",
    )
    pose_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of templates stored in the encrypted matrix.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Face Profile"
        verbose_name_plural = "Face Profiles"

    def __str__(self) -> str:
        return f"{self.user} ({self.pose_count} poses)"

    def set_embeddings(self, embeddings: np.ndarray) -> None:
        """Encrypt and store ``embeddings`` (shape ``(n, D)``)."""

        matrix = np.atleast_2d(np.asarray(embeddings, dtype=np.float64))
        if matrix.shape[1] != EMBEDDING_DIMENSION:
            raise ValueError(
                f"Face templates must have {EMBEDDING_DIMENSION} values, got {matrix.shape[1]}."
            )
        self.encrypted_embeddings = encrypt_face_templates(matrix)
        self.pose_count = matrix.shape[0]

    def get_embeddings(self) -> list[np.ndarray]:
        """Return the enrolled templates in enrollment order.

        Raises:
            src.common.crypto.TemplateDecodeError: the stored blob is unreadable.
        """

        matrix = decrypt_face_templates(bytes(self.encrypted_embeddings), EMBEDDING_DIMENSION)
        return list(matrix)
