"""Create attendance records, office settings and notifications."""

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AttendanceRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("check_in_time", models.DateTimeField(help_text="Server time of the admitted check-in.")),
                (
                    "check_out_time",
                    models.DateTimeField(
                        blank=True,
                        null=True,
                        help_text="Server time of the admitted check-out; empty while the record is open.",
                    ),
                ),
                (
                    "location_snapshot",
                    models.JSONField(default=dict, help_text="Location submitted with the check-in (and check-out)."),
                ),
                (
                    "network_snapshot",
                    models.JSONField(
                        default=dict, help_text="Network identity submitted with the check-in (and check-out)."
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("present", "Present"),
                            ("late", "Late"),
                            ("absent", "Absent"),
                            ("early_out", "Early out"),
                        ],
                        default="present",
                        max_length=16,
                    ),
                ),
                ("total_minutes", models.PositiveIntegerField(blank=True, null=True)),
                ("verification_method", models.CharField(default="face_id_secure", max_length=32)),
                (
                    "face_distance",
                    models.FloatField(blank=True, null=True, help_text="Best template distance at check-in, for audit."),
                ),
                (
                    "client_captured_at",
                    models.DateTimeField(
                        blank=True, null=True, help_text="Capture time reported by the device. Untrusted; audit only."
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        help_text="The user this attendance record belongs to.",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="attendance_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-check_in_time"],
            },
        ),
        migrations.CreateModel(
            name="OfficeSetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "key",
                    models.CharField(
                        choices=[
                            ("office_location", "Office location"),
                            ("allowed_radius_meters", "Allowed radius (meters)"),
                            ("wifi_allowlist", "Wi-Fi allowlist"),
                            ("working_hours", "Working hours"),
                            ("admin_notifications", "Admin notifications"),
                        ],
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("value", models.JSONField()),
                ("description", models.TextField(blank=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Office Setting",
                "verbose_name_plural": "Office Settings",
                "ordering": ["key"],
            },
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(max_length=32)),
                ("title", models.CharField(max_length=128)),
                ("message", models.TextField()),
                ("data", models.JSONField(default=dict)),
                ("is_read", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        help_text="The user whose attendance triggered the notification.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attendance_notifications",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.AddIndex(
            model_name="attendancerecord",
            index=models.Index(fields=["user", "check_in_time"], name="attendance_user_checkin_idx"),
        ),
        migrations.AddConstraint(
            model_name="attendancerecord",
            constraint=models.UniqueConstraint(
                condition=models.Q(("check_out_time__isnull", True)),
                fields=("user",),
                name="attendance_one_open_record_per_user",
            ),
        ),
        migrations.AddConstraint(
            model_name="attendancerecord",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    ("check_out_time__isnull", True),
                    ("check_out_time__gte", models.F("check_in_time")),
                    _connector="OR",
                ),
                name="attendance_checkout_after_checkin",
            ),
        ),
        migrations.AddIndex(
            model_name="notification",
            index=models.Index(fields=["is_read", "created_at"], name="attendance_notif_unread_idx"),
        ),
    ]
