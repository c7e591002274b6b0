"""Shared security helpers."""

from .crypto import (
    FaceTemplateEncryption,
    InvalidToken,
    TemplateDecodeError,
    decrypt_face_templates,
    encrypt_face_templates,
)

__all__ = [
    "FaceTemplateEncryption",
    "InvalidToken",
    "TemplateDecodeError",
    "decrypt_face_templates",
    "encrypt_face_templates",
]
