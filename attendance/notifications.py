"""Administrative notifications raised after an admitted attendance attempt."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from django.conf import settings
from django.contrib.auth import get_user_model

from attendance.models import Notification, OfficeSetting
from attendance.office import NotificationPreferences

logger = logging.getLogger(__name__)

_TITLES = {
    "check_in": "Check-In",
    "check_out": "Check-Out",
}
_VERBS = {
    "check_in": "checked in",
    "check_out": "checked out",
}


def load_notification_preferences() -> NotificationPreferences:
    raw = (
        OfficeSetting.objects.filter(key=OfficeSetting.ADMIN_NOTIFICATIONS)
        .values_list("value", flat=True)
        .first()
    )
    return NotificationPreferences.from_value(raw)


def _display_name(user_id: Any) -> str:
    User = get_user_model()
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        return "Employee"
    return user.get_full_name() or user.get_username() or getattr(user, "email", "") or "Employee"


def create_notification(
    event_type: str,
    user_id: Any,
    timestamp: datetime,
    details: Optional[Mapping[str, Any]] = None,
) -> Optional[Notification]:
    """Persist a notification when the admin preferences ask for one."""

    preferences = load_notification_preferences()
    if not preferences.wants(event_type):
        logger.debug("Admin notifications for %s are disabled", event_type)
        return None

    data = {"user_id": str(user_id), "time": timestamp.isoformat(), **(details or {})}
    notification = Notification.objects.create(
        type=event_type,
        title=_TITLES.get(event_type, event_type),
        message=f"{_display_name(user_id)} {_VERBS.get(event_type, event_type)}",
        data=data,
        user_id=user_id,
    )
    logger.info("Admin notification %s created for user %s", event_type, user_id)
    return notification


def notify(
    event_type: str,
    user_id: Any,
    timestamp: datetime,
    details: Optional[Mapping[str, Any]] = None,
) -> None:
    """Hand an attendance event to the notification pipeline.

    With ``ATTENDANCE_NOTIFICATIONS_ASYNC`` the work is queued on Celery;
    otherwise it runs inline. Callers treat any exception as best-effort
    failure and must not roll back on it.
    """

    if getattr(settings, "ATTENDANCE_NOTIFICATIONS_ASYNC", False):
        from attendance.tasks import deliver_notification

        deliver_notification.delay(event_type, str(user_id), timestamp.isoformat(), dict(details or {}))
        return

    create_notification(event_type, user_id, timestamp, details)


__all__ = ["create_notification", "load_notification_preferences", "notify"]
