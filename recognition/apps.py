"""App configuration for the recognition app (face templates and matching)."""

from django.apps import AppConfig


class RecognitionConfig(AppConfig):
    """Configuration class for the recognition app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "recognition"
