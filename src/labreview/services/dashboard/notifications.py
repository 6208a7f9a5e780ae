from __future__ import annotations

from typing import List

from labreview.domain.models.notification import Notification
from labreview.errors import RecordNotFoundError
from labreview.infra.db.repositories import NotificationRepository


class NotificationService:
    def __init__(self, notifications: NotificationRepository) -> None:
        self._notifications = notifications

    def list_for_user(self, user_id: str, *, unread_only: bool = False) -> List[Notification]:
        return self._notifications.list_for_user(user_id, unread_only=unread_only)

    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        """Mark one of the user's notifications as read.

        Other users' notifications are reported as not found.
        """

        notification = self._notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            raise RecordNotFoundError("Notification not found")
        if notification.read:
            return notification
        updated = notification.model_copy(update={"read": True})
        self._notifications.save(updated)
        return updated
