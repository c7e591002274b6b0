"""Create or update the office settings used by the admission engine."""

from __future__ import annotations

from datetime import time

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from attendance.models import OfficeSetting
from attendance.office import OfficeConfig, OfficeConfigError, invalidate_office_config


def _clock(value: str) -> str:
    try:
        time.fromisoformat(value)
    except ValueError as exc:
        raise CommandError(f"Expected HH:MM, got {value!r}.") from exc
    return value


class Command(BaseCommand):
    """Write office location, radius, Wi-Fi allowlist and working hours."""

    help = (
        "Seed or update the office geofence, Wi-Fi allowlist, working hours and "
        "admin notification preferences read by attendance verification."
    )

    def add_arguments(self, parser) -> None:  # pragma: no cover - argparse wiring
        parser.add_argument("--lat", type=float, required=True, help="Office latitude.")
        parser.add_argument("--lng", type=float, required=True, help="Office longitude.")
        parser.add_argument(
            "--radius",
            type=float,
            default=100.0,
            help="Allowed radius in meters (default: 100).",
        )
        parser.add_argument(
            "--ssid",
            action="append",
            default=[],
            help="Allowed Wi-Fi SSID; repeat for several. Omit to disable the network check.",
        )
        parser.add_argument("--start", default="09:00", help="Working day start, HH:MM.")
        parser.add_argument("--end", default="18:00", help="Working day end, HH:MM.")
        parser.add_argument(
            "--notify",
            choices=["none", "check_in", "check_out", "both"],
            default=None,
            help="Which admitted events raise admin notifications.",
        )

    def handle(self, *args, **options) -> None:
        values = {
            OfficeSetting.OFFICE_LOCATION: {"lat": options["lat"], "lng": options["lng"]},
            OfficeSetting.ALLOWED_RADIUS_METERS: options["radius"],
            OfficeSetting.WIFI_ALLOWLIST: list(options["ssid"]),
            OfficeSetting.WORKING_HOURS: {
                "start": _clock(options["start"]),
                "end": _clock(options["end"]),
            },
        }
        notify = options.get("notify")
        if notify is not None:
            values[OfficeSetting.ADMIN_NOTIFICATIONS] = {
                "enabled": notify != "none",
                "notify_on_checkin": notify in ("check_in", "both"),
                "notify_on_checkout": notify in ("check_out", "both"),
            }

        try:
            config = OfficeConfig.from_settings(values)
        except OfficeConfigError as exc:
            raise CommandError(str(exc)) from exc

        with transaction.atomic():
            for key, value in values.items():
                OfficeSetting.objects.update_or_create(key=key, defaults={"value": value})
        invalidate_office_config()

        allowlist = ", ".join(sorted(config.wifi_allowlist)) or "any network"
        self.stdout.write(
            self.style.SUCCESS(
                f"Office at ({config.office_location.lat}, {config.office_location.lng}) "
                f"within {config.allowed_radius_meters:g}m, Wi-Fi: {allowlist}, "
                f"hours {config.working_start:%H:%M}-{config.working_end:%H:%M}."
            )
        )
