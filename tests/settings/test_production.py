"""Smoke tests for the production settings module."""

from __future__ import annotations

import importlib
import sys

import pytest
from cryptography.fernet import Fernet
from django.core.exceptions import ImproperlyConfigured


def _reload_production_settings():
    """Force a reload of the production settings module for isolation."""

    for module in [
        "presence_gate.settings.production",
        "presence_gate.settings.sentry",
        "presence_gate.settings.base",
        "presence_gate.settings",
    ]:
        sys.modules.pop(module, None)
    return importlib.import_module("presence_gate.settings.production")


@pytest.fixture
def production_env(monkeypatch):
    monkeypatch.setenv("DJANGO_SECRET_KEY", "ci-secret-key-that-is-long-enough")
    monkeypatch.setenv("DJANGO_ALLOWED_HOSTS", "attendance.example.com, api.example.com")
    monkeypatch.setenv("FACE_DATA_ENCRYPTION_KEY", Fernet.generate_key().decode())
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.setenv("DB_NAME", "ci_db")
    monkeypatch.setenv("DB_USER", "ci_user")
    monkeypatch.setenv("DB_PASSWORD", "ci_password")
    monkeypatch.setenv("DB_HOST", "postgres")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_CONN_MAX_AGE", "120")
    return monkeypatch


def test_production_database_configuration(production_env):
    settings = _reload_production_settings()

    database = settings.DATABASES["default"]
    assert database["ENGINE"] == "django.db.backends.postgresql"
    assert database["NAME"] == "ci_db"
    assert database["USER"] == "ci_user"
    assert database["HOST"] == "postgres"
    assert database["PORT"] == "6543"
    assert database["CONN_MAX_AGE"] == 120


def test_production_hardening(production_env):
    settings = _reload_production_settings()

    assert settings.DEBUG is False
    assert settings.ALLOWED_HOSTS == ["attendance.example.com", "api.example.com"]
    assert settings.SECURE_SSL_REDIRECT is True
    assert settings.SESSION_COOKIE_SECURE is True
    assert settings.SECURE_HSTS_SECONDS == 3600
    assert settings.ATTENDANCE_NOTIFICATIONS_ASYNC is True


def test_production_requires_allowed_hosts(production_env):
    production_env.delenv("DJANGO_ALLOWED_HOSTS")

    with pytest.raises(ImproperlyConfigured, match="DJANGO_ALLOWED_HOSTS"):
        _reload_production_settings()


def test_invalid_threshold_is_rejected(production_env):
    production_env.setenv("RECOGNITION_DISTANCE_THRESHOLD", "close")

    with pytest.raises(ImproperlyConfigured, match="RECOGNITION_DISTANCE_THRESHOLD"):
        _reload_production_settings()
