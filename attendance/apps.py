"""App configuration for the attendance app (admission decisions and records)."""

from django.apps import AppConfig


class AttendanceConfig(AppConfig):
    """Configuration class for the attendance app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "attendance"

    def ready(self) -> None:
        from attendance import signals  # noqa: F401
