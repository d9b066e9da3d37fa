"""
===============================================================================
TARJETA CRC — domain/notifications.py
===============================================================================

Módulo:
    Bandeja de notificaciones por usuario

Responsabilidades:
    - Definir Notification y sus tipos.
    - Solo el estado de lectura es mutable (mark_read).

Colaboradores:
    - application/notifications.py (emisión)
    - application/procedures/auth.py (lectura / marcar leídas)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from .records import utcnow


class NotificationType(str, Enum):
    ORDER = "order"
    PAYMENT = "payment"
    APPROVAL = "approval"
    ALERT = "alert"
    SUCCESS = "success"
    INFO = "info"


@dataclass(frozen=True, kw_only=True)
class Notification:
    id: UUID = field(default_factory=uuid4)
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    link: str | None = None
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    def mark_read(self, at: datetime) -> "Notification":
        if self.is_read:
            return self
        return replace(self, is_read=True, read_at=at)
