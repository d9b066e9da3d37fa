# =============================================================================
# FILE: infrastructure/repositories/in_memory/notifications.py
# =============================================================================
"""
In-Memory Notification Repository.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from ....domain.notifications import Notification


class InMemoryNotificationRepository:
    def __init__(self) -> None:
        self._rows: Dict[UUID, Notification] = {}

    def add(self, notification: Notification) -> None:
        self._rows[notification.id] = notification

    def get(self, notification_id: UUID) -> Optional[Notification]:
        return self._rows.get(notification_id)

    def list_for_user(
        self, user_id: UUID, *, unread_only: bool = False, limit: int = 20
    ) -> List[Notification]:
        results = [n for n in self._rows.values() if n.user_id == user_id]
        if unread_only:
            results = [n for n in results if not n.is_read]
        results.sort(key=lambda n: n.created_at, reverse=True)
        return results[:limit]

    def count_unread(self, user_id: UUID) -> int:
        return sum(
            1 for n in self._rows.values() if n.user_id == user_id and not n.is_read
        )

    def mark_read(self, notification_id: UUID, at: datetime) -> None:
        current = self._rows.get(notification_id)
        if current is not None:
            self._rows[notification_id] = current.mark_read(at)

    def mark_all_read(self, user_id: UUID, at: datetime) -> int:
        changed = 0
        for notification in list(self._rows.values()):
            if notification.user_id == user_id and not notification.is_read:
                self._rows[notification.id] = notification.mark_read(at)
                changed += 1
        return changed

    def snapshot(self) -> Dict[UUID, Notification]:
        return dict(self._rows)

    def restore(self, rows: Dict[UUID, Notification]) -> None:
        self._rows = rows
