"""Great-circle distance used by the geofence check."""

from __future__ import annotations

import math

from attendance.attempts import GeoPoint

EARTH_RADIUS_METERS = 6_371_000.0


def haversine_distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Return the haversine distance between two coordinates in metres."""

    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    delta_lat = math.radians(b.lat - a.lat)
    delta_lng = math.radians(b.lng - a.lng)

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, h)))


def within_radius(location: GeoPoint, center: GeoPoint, radius_meters: float) -> tuple[bool, float]:
    """Return ``(inside, distance)``; the boundary itself counts as inside."""

    distance = haversine_distance_meters(location, center)
    return distance <= radius_meters, distance
