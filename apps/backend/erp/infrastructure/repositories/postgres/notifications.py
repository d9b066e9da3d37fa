"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/notifications.py
============================================================
Class: PostgresNotificationRepository

Responsibilities:
  - Persistir notificaciones por usuario (tabla notifications).
  - Listar, contar no leídas y marcar como leídas.

Collaborators:
  - psycopg.Connection (transacción en curso)
  - domain.notifications.Notification
  - crosscutting.exceptions.DatabaseError
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable
from uuid import UUID

from psycopg import Connection

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.notifications import Notification, NotificationType

_COLUMNS = "id, user_id, type, title, message, link, is_read, read_at, created_at"


def _row_to_notification(row: tuple) -> Notification:
    return Notification(
        id=row[0],
        user_id=row[1],
        type=NotificationType(row[2]),
        title=row[3],
        message=row[4],
        link=row[5],
        is_read=row[6],
        read_at=row[7],
        created_at=row[8],
    )


class PostgresNotificationRepository:
    def __init__(self, conn: Connection):
        self._conn = conn

    def _execute(self, query: str, params: Iterable[object], error_message: str):
        try:
            return self._conn.execute(query, tuple(params))
        except Exception as exc:
            logger.exception(error_message, extra={"error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    def add(self, notification: Notification) -> None:
        self._execute(
            f"INSERT INTO notifications ({_COLUMNS}) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (
                notification.id,
                notification.user_id,
                notification.type.value,
                notification.title,
                notification.message,
                notification.link,
                notification.is_read,
                notification.read_at,
                notification.created_at,
            ),
            "PostgresNotificationRepository: Failed to insert notification",
        )

    def get(self, notification_id: UUID) -> Notification | None:
        row = self._execute(
            f"SELECT {_COLUMNS} FROM notifications WHERE id = %s",
            (notification_id,),
            "PostgresNotificationRepository: Failed to get notification",
        ).fetchone()
        return _row_to_notification(row) if row else None

    def list_for_user(
        self, user_id: UUID, *, unread_only: bool = False, limit: int = 20
    ) -> list[Notification]:
        unread = " AND is_read = false" if unread_only else ""
        rows = self._execute(
            f"SELECT {_COLUMNS} FROM notifications WHERE user_id = %s{unread} "
            "ORDER BY created_at DESC, id DESC LIMIT %s",
            (user_id, limit),
            "PostgresNotificationRepository: Failed to list notifications",
        ).fetchall()
        return [_row_to_notification(row) for row in rows]

    def count_unread(self, user_id: UUID) -> int:
        row = self._execute(
            "SELECT count(*) FROM notifications WHERE user_id = %s AND is_read = false",
            (user_id,),
            "PostgresNotificationRepository: Failed to count notifications",
        ).fetchone()
        return int(row[0]) if row else 0

    def mark_read(self, notification_id: UUID, at: datetime) -> None:
        self._execute(
            "UPDATE notifications SET is_read = true, read_at = %s "
            "WHERE id = %s AND is_read = false",
            (at, notification_id),
            "PostgresNotificationRepository: Failed to mark notification read",
        )

    def mark_all_read(self, user_id: UUID, at: datetime) -> int:
        cur = self._execute(
            "UPDATE notifications SET is_read = true, read_at = %s "
            "WHERE user_id = %s AND is_read = false",
            (at, user_id),
            "PostgresNotificationRepository: Failed to mark notifications read",
        )
        return cur.rowcount or 0
