from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.contrib.auth import get_user_model

from notifications.models import UserNotification

logger = logging.getLogger(__name__)
User = get_user_model()


def _get_user(user_id: int) -> Optional[User]:
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        logger.warning("notifications: user %s no longer exists", user_id)
        return None


@shared_task(name="notifications.send_user_notification")
def send_user_notification(
    user_id: int,
    title: str,
    body: str,
    kind: str = UserNotification.Kind.GENERAL,
    booking_id: Optional[int] = None,
):
    """Deliver a notification to the recipient's in-app inbox."""
    user = _get_user(user_id)
    if user is None:
        return None
    notification = UserNotification.objects.create(
        user=user,
        kind=kind,
        title=title,
        body=body,
        booking_id=booking_id,
    )
    logger.info(
        "notifications: delivered %s to user %s",
        kind,
        user_id,
        extra={"notification_id": notification.id, "booking_id": booking_id},
    )
    return notification.id
