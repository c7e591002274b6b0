"""Centralised Fernet helpers for encrypting enrolled face templates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np
from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

BytesLike = Union[bytes, bytearray, memoryview]


class TemplateDecodeError(ValueError):
    """Raised when a stored template blob cannot be turned back into vectors."""


def _coerce_key_bytes(key: BytesLike | str) -> bytes:
    """Normalise the configured Fernet key to ``bytes``."""

    if isinstance(key, str):
        return key.encode()
    return bytes(key)


@dataclass(slots=True)
class _FernetWrapper:
    """Lazily instantiate a Fernet cipher using a Django setting."""

    setting_name: str
    key_override: BytesLike | str | None = None
    _cipher: Fernet | None = None

    def _resolve_key(self) -> bytes:
        key = self.key_override
        if key is None:
            key = getattr(settings, self.setting_name, None)
        if key is None:
            raise ImproperlyConfigured(f"{self.setting_name} is not configured.")

        key_bytes = _coerce_key_bytes(key)
        try:
            Fernet(key_bytes)
        except (TypeError, ValueError) as exc:
            raise ImproperlyConfigured(f"{self.setting_name} is invalid.") from exc
        return key_bytes

    def _get_cipher(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._resolve_key())
        return self._cipher

    def encrypt(self, payload: BytesLike) -> bytes:
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise TypeError("encrypt expects a bytes-like object")
        return self._get_cipher().encrypt(bytes(payload))

    def decrypt(self, token: BytesLike) -> bytes:
        if not isinstance(token, (bytes, bytearray, memoryview)):
            raise TypeError("decrypt expects a bytes-like object")
        return self._get_cipher().decrypt(bytes(token))


class FaceTemplateEncryption:
    """Encrypt and decrypt stacks of fixed-width face templates.

    Templates are serialised as contiguous ``float64`` rows; the row width is
    supplied on decryption so a blob written for one dimensionality can never
    be silently reinterpreted as another.
    """

    def __init__(self, key: BytesLike | str | None = None) -> None:
        self._helper = _FernetWrapper("FACE_DATA_ENCRYPTION_KEY", key_override=key)

    def encrypt_templates(self, templates: np.ndarray) -> bytes:
        if not isinstance(templates, np.ndarray):
            raise TypeError("encrypt_templates expects a numpy.ndarray")
        matrix = np.atleast_2d(templates).astype(np.float64)
        return self._helper.encrypt(np.ascontiguousarray(matrix).tobytes())

    def decrypt_templates(self, token: BytesLike, dimension: int) -> np.ndarray:
        try:
            raw = self._helper.decrypt(token)
        except InvalidToken as exc:
            raise TemplateDecodeError("Stored face templates could not be decrypted.") from exc

        flat = np.frombuffer(raw, dtype=np.float64)
        if flat.size == 0 or flat.size % dimension:
            raise TemplateDecodeError(
                f"Stored face templates hold {flat.size} values, not a multiple of {dimension}."
            )
        return flat.reshape(-1, dimension).copy()


_face_encryption = FaceTemplateEncryption()


def encrypt_face_templates(templates: np.ndarray) -> bytes:
    """Encrypt a ``(n, D)`` template matrix with the facial data key."""

    return _face_encryption.encrypt_templates(templates)


def decrypt_face_templates(token: BytesLike, dimension: int) -> np.ndarray:
    """Decrypt a blob produced by :func:`encrypt_face_templates`."""

    return _face_encryption.decrypt_templates(token, dimension)


__all__ = [
    "FaceTemplateEncryption",
    "InvalidToken",
    "TemplateDecodeError",
    "decrypt_face_templates",
    "encrypt_face_templates",
]
