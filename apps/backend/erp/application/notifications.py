"""
===============================================================================
TARJETA CRC — application/notifications.py (Notification Emitter)
===============================================================================

Responsabilidades:
  - Persistir UNA notificación no leída para un usuario, dentro de la
    transacción del handler que la origina.

Colaboradores:
  - domain.notifications.Notification / NotificationType
  - domain.repositories.UnitOfWork (notifications)

Notas:
  - Distinto de la auditoría: las notificaciones son para el usuario y su
    estado de lectura es mutable.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from ..domain.notifications import Notification, NotificationType
from ..domain.repositories import UnitOfWork


def emit_notification(
    uow: UnitOfWork,
    user_id: UUID,
    type: NotificationType | str,
    title: str,
    message: str,
    link: str | None = None,
    *,
    at: datetime | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=NotificationType(type),
        title=title,
        message=message,
        link=link,
        **({"created_at": at} if at is not None else {}),
    )
    uow.notifications.add(notification)
    return notification
