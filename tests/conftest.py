import math

import numpy as np
import pytest


def unit_vector(seed: int, dimension: int = 128) -> np.ndarray:
    """Deterministic unit-norm vector for building templates in tests."""

    rng = np.random.default_rng(seed)
    vector = rng.normal(size=dimension)
    return vector / np.linalg.norm(vector)


def nudge(vector: np.ndarray, distance: float, seed: int = 99) -> np.ndarray:
    """Return a vector exactly ``distance`` away from ``vector`` (Euclidean)."""

    rng = np.random.default_rng(seed)
    direction = rng.normal(size=vector.shape[0])
    direction -= direction.dot(vector) * vector
    direction /= np.linalg.norm(direction)
    return vector + direction * distance


def offset_point(lat: float, lng: float, meters_north: float) -> tuple[float, float]:
    """Latitude/longitude ``meters_north`` of the given point."""

    return lat + math.degrees(meters_north / 6_371_000.0), lng


@pytest.fixture(autouse=True)
def _clear_cache():
    """Isolate rate-limit counters and the cached office configuration."""

    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture(scope="session", autouse=True)
def close_database_connections():
    """Ensure all database connections are properly closed after tests.

    This fixture runs at the end of the test session to prevent the
    'database is being accessed by other users' error during teardown.
    """
    yield
    from django.db import connections

    for conn in connections.all():
        conn.close()


@pytest.fixture
def office_location():
    return {"lat": 25.2048, "lng": 55.2708}


@pytest.fixture
def office_settings(db, office_location):
    """Office at ``office_location`` with a 100m radius and one allowed SSID."""

    from attendance.models import OfficeSetting

    values = {
        OfficeSetting.OFFICE_LOCATION: office_location,
        OfficeSetting.ALLOWED_RADIUS_METERS: 100,
        OfficeSetting.WIFI_ALLOWLIST: ["OfficeNet"],
        OfficeSetting.WORKING_HOURS: {"start": "09:00", "end": "18:00"},
    }
    for key, value in values.items():
        OfficeSetting.objects.update_or_create(key=key, defaults={"value": value})
    return values


@pytest.fixture
def employee(django_user_model):
    return django_user_model.objects.create_user(
        username="alice",
        password="s3cure-pass!",
        first_name="Alice",
        last_name="Example",
    )


@pytest.fixture
def other_employee(django_user_model):
    return django_user_model.objects.create_user(username="bob", password="s3cure-pass!")


@pytest.fixture
def enrolled_template():
    return unit_vector(1)


@pytest.fixture
def enrolled_employee(employee, enrolled_template):
    from recognition.enrollment import enroll

    enroll(employee, embedding=enrolled_template.tolist())
    return employee
