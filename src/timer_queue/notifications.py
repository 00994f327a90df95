"""Store-backed notification history."""

from __future__ import annotations

import logging
from typing import Optional

from .clock import Clock
from .errors import ValidationError
from .models import NOTIFICATION_TYPES, Notification, generate_id
from .store import QueueRepository

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "success": logging.INFO,
}


class NotificationCenter:
    """Keeps the most recent notifications, newest first."""

    def __init__(self, repository: QueueRepository, clock: Clock, limit: int = 50) -> None:
        self._repository = repository
        self._clock = clock
        self._limit = limit

    def add(self, type_: str, message: str) -> Optional[Notification]:
        if type_ not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {type_}")
        logger.log(_LOG_LEVELS[type_], "[%s] %s", type_, message)
        if not self._repository.load_settings().notifications_enabled:
            return None

        notification = Notification(
            id=generate_id(),
            type=type_,
            message=message,
            timestamp=self._clock.now(),
        )
        history = self._repository.load_notifications()
        history.insert(0, notification)
        del history[self._limit :]
        self._repository.save_notifications(history)
        return notification

    def history(self, unread_only: bool = False) -> list[Notification]:
        history = self._repository.load_notifications()
        if unread_only:
            return [notification for notification in history if not notification.read]
        return history

    def unread_count(self) -> int:
        return sum(1 for notification in self._repository.load_notifications() if not notification.read)

    def mark_read(self, notification_id: str) -> bool:
        history = self._repository.load_notifications()
        for notification in history:
            if notification.id == notification_id:
                notification.read = True
                self._repository.save_notifications(history)
                return True
        return False

    def mark_all_read(self) -> int:
        history = self._repository.load_notifications()
        changed = 0
        for notification in history:
            if not notification.read:
                notification.read = True
                changed += 1
        if changed:
            self._repository.save_notifications(history)
        return changed

    def clear(self) -> None:
        self._repository.save_notifications([])
