"""Tests for the enrollment service and the enroll endpoint."""

from __future__ import annotations

import numpy as np
import pytest
from django.test import override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from conftest import unit_vector
from recognition.enrollment import MAX_POSES, EnrollmentError, enroll
from recognition.models import FaceProfile

pytestmark = pytest.mark.django_db


def test_single_embedding_is_stored_unchanged(employee):
    template = unit_vector(11)

    profile = enroll(employee, embedding=template.tolist())

    assert profile.pose_count == 1
    stored = FaceProfile.objects.get(user=employee).get_embeddings()
    assert np.array_equal(stored[0], template)


def test_templates_are_encrypted_at_rest(employee):
    template = unit_vector(12)

    profile = enroll(employee, embedding=template.tolist())

    assert template.tobytes() not in bytes(profile.encrypted_embeddings)


def test_multi_pose_wins_over_single(employee):
    poses = [unit_vector(seed).tolist() for seed in (13, 14, 15)]

    profile = enroll(employee, embedding=unit_vector(16).tolist(), embeddings=poses)

    assert profile.pose_count == 3
    stored = profile.get_embeddings()
    assert np.allclose(stored[2], poses[2])


def test_multi_pose_matrix_is_accepted(employee):
    poses = np.stack([unit_vector(seed) for seed in (22, 23)])

    profile = enroll(employee, embeddings=poses)

    assert profile.pose_count == 2
    assert np.allclose(profile.get_embeddings()[1], poses[1])


def test_empty_pose_matrix_falls_back_to_single_embedding(employee):
    template = unit_vector(24)

    profile = enroll(employee, embedding=template, embeddings=np.empty((0, 128)))

    assert profile.pose_count == 1
    assert np.array_equal(profile.get_embeddings()[0], template)


@override_settings(RECOGNITION_ENROLLMENT_INCLUDE_MEAN=True)
def test_mean_pose_is_appended_when_enabled(employee):
    poses = [unit_vector(seed) for seed in (17, 18)]

    profile = enroll(employee, embeddings=[pose.tolist() for pose in poses])

    stored = profile.get_embeddings()
    assert profile.pose_count == 3
    expected = (poses[0] + poses[1]) / np.linalg.norm(poses[0] + poses[1])
    assert np.allclose(stored[-1], expected)


def test_reenrollment_replaces_templates(employee):
    enroll(employee, embeddings=[unit_vector(19).tolist(), unit_vector(20).tolist()])
    replacement = unit_vector(21)

    profile = enroll(employee, embedding=replacement.tolist())

    assert FaceProfile.objects.filter(user=employee).count() == 1
    assert profile.pose_count == 1
    assert np.array_equal(profile.get_embeddings()[0], replacement)


@pytest.mark.parametrize(
    "embedding",
    [
        [0.1] * 64,
        [0.1] * 127 + ["x"],
        [0.1] * 127 + [float("nan")],
        "not-a-vector",
    ],
)
def test_invalid_embeddings_are_rejected(employee, embedding):
    with pytest.raises(EnrollmentError):
        enroll(employee, embedding=embedding)

    assert not FaceProfile.objects.filter(user=employee).exists()


def test_nothing_to_enroll_is_rejected(employee):
    with pytest.raises(EnrollmentError):
        enroll(employee)


def test_too_many_poses_are_rejected(employee):
    with pytest.raises(EnrollmentError):
        enroll(employee, embeddings=[unit_vector(seed).tolist() for seed in range(MAX_POSES + 1)])


@pytest.fixture
def api_client(employee):
    client = APIClient()
    client.force_authenticate(user=employee)
    return client


def test_enroll_endpoint_stores_profile(api_client, employee):
    response = api_client.post(
        reverse("face-enroll"),
        {"user_id": str(employee.pk), "face_embeddings": [unit_vector(22).tolist(), unit_vector(23).tolist()]},
        format="json",
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Enrollment successful", "poses_stored": 2}
    assert FaceProfile.objects.get(user=employee).pose_count == 2


def test_enroll_endpoint_refuses_other_users(api_client, other_employee):
    response = api_client.post(
        reverse("face-enroll"),
        {"user_id": str(other_employee.pk), "face_embedding": unit_vector(24).tolist()},
        format="json",
    )

    assert response.status_code == 403
    assert not FaceProfile.objects.filter(user=other_employee).exists()


def test_enroll_endpoint_rejects_bad_vectors(api_client, employee):
    response = api_client.post(
        reverse("face-enroll"),
        {"user_id": str(employee.pk), "face_embedding": [0.5] * 10},
        format="json",
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_enroll_endpoint_requires_an_embedding(api_client, employee):
    response = api_client.post(reverse("face-enroll"), {"user_id": str(employee.pk)}, format="json")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid face embedding format"


def test_enroll_status_reports_enrollment(api_client, employee):
    assert api_client.get(reverse("face-enroll")).json() == {"enrolled": False}

    enroll(employee, embedding=unit_vector(25).tolist())
    body = api_client.get(reverse("face-enroll")).json()

    assert body["enrolled"] is True
    assert body["pose_count"] == 1


def test_enroll_endpoint_requires_authentication(employee):
    response = APIClient().post(
        reverse("face-enroll"),
        {"user_id": str(employee.pk), "face_embedding": unit_vector(26).tolist()},
        format="json",
    )

    assert response.status_code == 401
