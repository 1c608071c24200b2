"""Fire-and-forget notification hooks for project events."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    def send(self, *, recipient_id: UUID, subject: str, body: str) -> None: ...


class LoggingNotificationSender:
    """Default sender; the e-mail gateway plugs in behind the same interface."""

    def send(self, *, recipient_id: UUID, subject: str, body: str) -> None:
        logger.info("Notify %s: %s - %s", recipient_id, subject, body)


def notify_quietly(sender: NotificationSender, *, recipient_id: UUID, subject: str, body: str) -> None:
    """Deliver a notification; delivery failures are logged and never reach the caller."""

    try:
        sender.send(recipient_id=recipient_id, subject=subject, body=body)
    except Exception:
        logger.exception("Notification to %s failed: %s", recipient_id, subject)
