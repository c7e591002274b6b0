"""
Database models for the attendance app.

Attendance records are created and closed only by the admission engine and
are never deleted. Office settings are the key/value rows behind
:class:`attendance.office.OfficeConfig`.
"""

from django.conf import settings
from django.db import models
from django.db.models import F, Q


class AttendanceRecord(models.Model):
    """One check-in, optionally closed by a matching check-out."""

    class Status(models.TextChoices):
        PRESENT = "present", "Present"
        LATE = "late", "Late"
        ABSENT = "absent", "Absent"
        EARLY_OUT = "early_out", "Early out"

    VERIFICATION_FACE_ID_SECURE = "face_id_secure"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="attendance_records",
        help_text="The user this attendance record belongs to.",
    )
    check_in_time = models.DateTimeField(help_text="Server time of the admitted check-in.")
    check_out_time = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Server time of the admitted check-out; empty while the record is open.",
    )
    location_snapshot = models.JSONField(
        default=dict, help_text="Location submitted with the check-in (and check-out)."
    )
    network_snapshot = models.JSONField(
        default=dict, help_text="Network identity submitted with the check-in (and check-out)."
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PRESENT,
    )
    total_minutes = models.PositiveIntegerField(null=True, blank=True)
    verification_method = models.CharField(
        max_length=32, default=VERIFICATION_FACE_ID_SECURE
    )
    face_distance = models.FloatField(
        null=True, blank=True, help_text="Best template distance at check-in, for audit."
    )
    client_captured_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Capture time reported by the device. Untrusted; audit only.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-check_in_time"]
        indexes = [
            models.Index(fields=["user", "check_in_time"], name="attendance_user_checkin_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=Q(check_out_time__isnull=True),
                name="attendance_one_open_record_per_user",
            ),
            models.CheckConstraint(
                condition=Q(check_out_time__isnull=True) | Q(check_out_time__gte=F("check_in_time")),
                name="attendance_checkout_after_checkin",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user} - {self.check_in_time:%Y-%m-%d %H:%M} - {self.status}"

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None


class OfficeSetting(models.Model):
    """A single named office configuration value stored as JSON."""

    OFFICE_LOCATION = "office_location"
    ALLOWED_RADIUS_METERS = "allowed_radius_meters"
    WIFI_ALLOWLIST = "wifi_allowlist"
    WORKING_HOURS = "working_hours"
    ADMIN_NOTIFICATIONS = "admin_notifications"

    KEY_CHOICES = [
        (OFFICE_LOCATION, "Office location"),
        (ALLOWED_RADIUS_METERS, "Allowed radius (meters)"),
        (WIFI_ALLOWLIST, "Wi-Fi allowlist"),
        (WORKING_HOURS, "Working hours"),
        (ADMIN_NOTIFICATIONS, "Admin notifications"),
    ]

    key = models.CharField(max_length=64, unique=True, choices=KEY_CHOICES)
    value = models.JSONField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]
        verbose_name = "Office Setting"
        verbose_name_plural = "Office Settings"

    def __str__(self) -> str:
        return self.key


class Notification(models.Model):
    """An administrative notification raised after an admitted attempt."""

    type = models.CharField(max_length=32)
    title = models.CharField(max_length=128)
    message = models.TextField()
    data = models.JSONField(default=dict)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="attendance_notifications",
        help_text="The user whose attendance triggered the notification.",
    )
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_read", "created_at"], name="attendance_notif_unread_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.type}: {self.message}"
