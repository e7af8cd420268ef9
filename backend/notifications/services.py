"""Best-effort notification dispatch used by booking and payment flows."""

from __future__ import annotations

import logging
from typing import Optional

from notifications import tasks as notification_tasks

logger = logging.getLogger(__name__)


def notify_user(
    user_id: int,
    title: str,
    body: str,
    *,
    kind: str = "general",
    booking_id: Optional[int] = None,
) -> None:
    """Queue a notification; failures are logged and never propagate."""
    try:
        notification_tasks.send_user_notification.delay(user_id, title, body, kind, booking_id)
    except Exception:
        logger.info(
            "notifications: failed to queue %s for user %s",
            kind,
            user_id,
            exc_info=True,
        )
