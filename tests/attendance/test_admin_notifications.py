"""Tests for admin notifications raised by admitted attendance."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest import mock

import pytest
from django.test import override_settings

from attendance.models import Notification, OfficeSetting
from attendance.notifications import create_notification, load_notification_preferences, notify
from attendance.tasks import deliver_notification

pytestmark = pytest.mark.django_db

WHEN = datetime(2026, 3, 2, 4, 30, tzinfo=timezone.utc)


def _preferences(**values):
    OfficeSetting.objects.update_or_create(
        key=OfficeSetting.ADMIN_NOTIFICATIONS, defaults={"value": values}
    )


def test_missing_preferences_disable_notifications(employee):
    assert not load_notification_preferences().wants("check_in")
    assert create_notification("check_in", employee.pk, WHEN) is None
    assert not Notification.objects.exists()


def test_check_in_notification_is_created(employee):
    _preferences(enabled=True, notify_on_checkin=True)

    notification = create_notification("check_in", employee.pk, WHEN, {"attendance_id": 3})

    assert notification.title == "Check-In"
    assert notification.message == "Alice Example checked in"
    assert notification.user == employee
    assert notification.data == {
        "user_id": str(employee.pk),
        "time": WHEN.isoformat(),
        "attendance_id": 3,
    }


def test_check_out_respects_its_own_switch(employee):
    _preferences(enabled=True, notify_on_checkin=True, notify_on_checkout=False)

    assert create_notification("check_out", employee.pk, WHEN) is None


def test_username_is_used_without_a_full_name(other_employee):
    _preferences(notify_on_checkout=True)

    notification = create_notification("check_out", other_employee.pk, WHEN)

    assert notification.message == "bob checked out"


@override_settings(ATTENDANCE_NOTIFICATIONS_ASYNC=False)
def test_notify_runs_inline_when_synchronous(employee):
    _preferences(notify_on_checkin=True)

    notify("check_in", employee.pk, WHEN)

    assert Notification.objects.filter(type="check_in").count() == 1


@override_settings(ATTENDANCE_NOTIFICATIONS_ASYNC=True)
def test_notify_queues_celery_task_when_asynchronous(employee):
    with mock.patch.object(deliver_notification, "delay") as delay:
        notify("check_out", employee.pk, WHEN, {"total_minutes": 480})

    delay.assert_called_once_with("check_out", str(employee.pk), WHEN.isoformat(), {"total_minutes": 480})
    assert not Notification.objects.exists()


def test_task_creates_notification(employee):
    _preferences(notify_on_checkin=True)

    notification_id = deliver_notification.apply(
        args=("check_in", str(employee.pk), WHEN.isoformat(), {"attendance_id": 1})
    ).get()

    assert Notification.objects.get(pk=notification_id).data["attendance_id"] == 1
