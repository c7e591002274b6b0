"""Celery tasks for the attendance app."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from celery import shared_task

from attendance.notifications import create_notification

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="attendance.deliver_notification", ignore_result=True)
def deliver_notification(
    self,
    event_type: str,
    user_id: str,
    timestamp: str,
    details: Optional[Mapping[str, Any]] = None,
) -> Optional[int]:
    """Create the admin notification for an admitted attempt."""

    try:
        notification = create_notification(
            event_type, user_id, datetime.fromisoformat(timestamp), details
        )
    except Exception:
        logger.exception("Failed to deliver %s notification for user %s", event_type, user_id)
        raise

    return notification.pk if notification is not None else None
