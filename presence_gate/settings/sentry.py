"""Sentry configuration helpers used by production deployments."""

from __future__ import annotations

import logging
import os
from collections.abc import MutableMapping
from typing import Any

from django.core.exceptions import ImproperlyConfigured

import sentry_sdk
from sentry_sdk.integrations import DidNotEnable
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from . import base as base_settings

__all__ = ["initialize_sentry"]

_SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie"}
# Request fields carrying biometric vectors or precise location.
_SENSITIVE_FIELDS = {"face_embedding", "face_embeddings", "location", "wifi_info"}
_FILTERED = "[Filtered]"


def _get_sample_rate(var_name: str, default: float) -> float:
    """Return a tracing sample rate constrained between 0.0 and 1.0 inclusive."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(
            f"{var_name} must be a floating point number between 0.0 and 1.0."
        ) from exc
    if not 0.0 <= value <= 1.0:
        raise ImproperlyConfigured(f"{var_name} must be between 0.0 and 1.0 when provided.")
    return value


def _scrub_headers(headers: MutableMapping[str, Any]) -> None:
    """Remove sensitive headers from captured events in-place."""

    for name in list(headers):
        if name.lower() in _SENSITIVE_HEADERS:
            headers[name] = _FILTERED


def _scrub_request_data(data: MutableMapping[str, Any]) -> None:
    """Mask biometric and location fields in captured request bodies."""

    for field in _SENSITIVE_FIELDS:
        if field in data:
            data[field] = _FILTERED


def scrub_event(event: dict[str, Any], *, send_default_pii: bool) -> dict[str, Any]:
    """Return ``event`` with credentials, biometrics and user details removed."""

    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, MutableMapping):
            _scrub_headers(headers)
        data = request.get("data")
        if isinstance(data, MutableMapping):
            _scrub_request_data(data)
    if not send_default_pii:
        event.pop("user", None)
    return event


def initialize_sentry() -> None:
    """Initialise Sentry SDK when a DSN is supplied via the environment."""

    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return

    send_default_pii = base_settings._get_bool_env("SENTRY_SEND_DEFAULT_PII", default=False)

    def _before_send(event: dict[str, Any], _hint: object | None) -> dict[str, Any] | None:
        return scrub_event(event, send_default_pii=send_default_pii)

    integrations: list[Any] = [
        DjangoIntegration(transaction_style="url"),
        LoggingIntegration(level=None, event_level=logging.ERROR),
    ]

    try:
        from sentry_sdk.integrations.celery import CeleryIntegration

        integrations.append(CeleryIntegration())
    except (ImportError, DidNotEnable):  # pragma: no cover - celery missing
        pass

    sentry_sdk.init(
        dsn=dsn,
        environment=os.environ.get("SENTRY_ENVIRONMENT", "production"),
        release=os.environ.get("SENTRY_RELEASE"),
        integrations=integrations,
        traces_sample_rate=_get_sample_rate("SENTRY_TRACES_SAMPLE_RATE", default=0.0),
        send_default_pii=send_default_pii,
        before_send=_before_send,
    )
