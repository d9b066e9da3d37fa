"""
===============================================================================
TARJETA CRC — domain/__init__.py
===============================================================================

Módulo:
    Exportaciones de la Capa de Dominio

Responsabilidades:
    - Centralizar exports de contratos y tipos transversales.
    - Evitar imports profundos desde application/interfaces.

Reglas:
    - Solo re-exporta contratos/entidades del dominio.
    - No importar infraestructura aquí.
    - Las entidades de cada módulo de negocio se importan desde su submódulo.
===============================================================================
"""

from .audit import AuditLogEntry, Snapshot, snapshot_of
from .notifications import Notification, NotificationType
from .permissions import AccessLevel, Permission
from .records import Address, Record, utcnow
from .repositories import (
    RECORD_KINDS,
    AuditLogRepository,
    NotificationRepository,
    RecordRepository,
    Store,
    UnitOfWork,
)

__all__ = [
    # Base
    "Record",
    "Address",
    "utcnow",
    # Permisos
    "Permission",
    "AccessLevel",
    # Auditoría / notificaciones
    "AuditLogEntry",
    "Snapshot",
    "snapshot_of",
    "Notification",
    "NotificationType",
    # Puertos
    "RecordRepository",
    "AuditLogRepository",
    "NotificationRepository",
    "UnitOfWork",
    "Store",
    "RECORD_KINDS",
]
