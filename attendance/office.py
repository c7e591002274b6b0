"""Office configuration: geofence, Wi-Fi allowlist and working hours.

The configuration is assembled from :class:`attendance.models.OfficeSetting`
rows, cached in Django's cache, and invalidated whenever a row changes. The
engine treats it as authoritative; nothing here is ever read from a client
request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import time
from typing import Any, Mapping

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured

from attendance.attempts import GeoPoint
from attendance.models import OfficeSetting

logger = logging.getLogger(__name__)

OFFICE_CONFIG_CACHE_KEY = "attendance:office-config:v1"
DEFAULT_RADIUS_METERS = 100.0
DEFAULT_WORKING_HOURS = ("09:00", "18:00")


class OfficeConfigError(ImproperlyConfigured):
    """Raised when stored office settings cannot support an admission decision."""


@dataclass(frozen=True)
class NotificationPreferences:
    enabled: bool = True
    notify_on_checkin: bool = False
    notify_on_checkout: bool = False

    def wants(self, event_type: str) -> bool:
        if not self.enabled:
            return False
        if event_type == "check_in":
            return self.notify_on_checkin
        if event_type == "check_out":
            return self.notify_on_checkout
        return False

    @classmethod
    def from_value(cls, raw: Any) -> "NotificationPreferences":
        """Parse the admin_notifications setting; a missing row means the defaults."""

        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise OfficeConfigError("admin_notifications must be an object.")
        return cls(
            enabled=bool(raw.get("enabled", True)),
            notify_on_checkin=bool(raw.get("notify_on_checkin", False)),
            notify_on_checkout=bool(raw.get("notify_on_checkout", False)),
        )


@dataclass(frozen=True)
class OfficeConfig:
    office_location: GeoPoint
    allowed_radius_meters: float = DEFAULT_RADIUS_METERS
    wifi_allowlist: frozenset[str] = frozenset()
    working_start: time = time(9, 0)
    working_end: time = time(18, 0)

    def __post_init__(self) -> None:
        if not self.allowed_radius_meters > 0:
            raise OfficeConfigError("allowed_radius_meters must be greater than zero.")

    @property
    def network_check_enabled(self) -> bool:
        return bool(self.wifi_allowlist)

    @classmethod
    def from_settings(cls, values: Mapping[str, Any]) -> "OfficeConfig":
        """Build a configuration from ``{setting key: JSON value}``."""

        raw_location = values.get(OfficeSetting.OFFICE_LOCATION)
        if not isinstance(raw_location, Mapping):
            raise OfficeConfigError("The office_location setting is not configured.")
        try:
            location = GeoPoint(float(raw_location["lat"]), float(raw_location["lng"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise OfficeConfigError("office_location must provide numeric 'lat' and 'lng'.") from exc

        raw_radius = values.get(OfficeSetting.ALLOWED_RADIUS_METERS)
        try:
            radius = DEFAULT_RADIUS_METERS if raw_radius is None else float(raw_radius)
        except (TypeError, ValueError) as exc:
            raise OfficeConfigError("allowed_radius_meters must be a number.") from exc

        raw_allowlist = values.get(OfficeSetting.WIFI_ALLOWLIST) or []
        if isinstance(raw_allowlist, str) or not isinstance(raw_allowlist, (list, tuple)):
            raise OfficeConfigError("wifi_allowlist must be a list of SSIDs.")
        allowlist = frozenset(str(ssid).strip().strip('"') for ssid in raw_allowlist if str(ssid).strip())

        raw_hours = values.get(OfficeSetting.WORKING_HOURS) or {}
        if not isinstance(raw_hours, Mapping):
            raise OfficeConfigError("working_hours must be an object with 'start' and 'end'.")
        start = _parse_clock(raw_hours.get("start", DEFAULT_WORKING_HOURS[0]), "start")
        end = _parse_clock(raw_hours.get("end", DEFAULT_WORKING_HOURS[1]), "end")

        return cls(
            office_location=location,
            allowed_radius_meters=radius,
            wifi_allowlist=allowlist,
            working_start=start,
            working_end=end,
        )


def _parse_clock(raw: Any, label: str) -> time:
    try:
        return time.fromisoformat(str(raw))
    except ValueError as exc:
        raise OfficeConfigError(f"working_hours.{label} must look like HH:MM, got {raw!r}.") from exc


def load_office_config() -> OfficeConfig:
    """Return the current office configuration, from cache when possible.

    Raises:
        OfficeConfigError: the stored settings are missing or invalid.
    """

    cached = cache.get(OFFICE_CONFIG_CACHE_KEY)
    if isinstance(cached, OfficeConfig):
        return cached

    values = dict(OfficeSetting.objects.values_list("key", "value"))
    config = OfficeConfig.from_settings(values)
    ttl = getattr(settings, "ATTENDANCE_OFFICE_CONFIG_CACHE_TTL", 300)
    if ttl:
        cache.set(OFFICE_CONFIG_CACHE_KEY, config, ttl)
    return config


def invalidate_office_config() -> None:
    cache.delete(OFFICE_CONFIG_CACHE_KEY)
    logger.debug("Office configuration cache invalidated")


__all__ = [
    "OfficeConfig",
    "OfficeConfigError",
    "NotificationPreferences",
    "invalidate_office_config",
    "load_office_config",
]
