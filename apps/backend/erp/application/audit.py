"""
===============================================================================
TARJETA CRC — application/audit.py (Audit Recorder)
===============================================================================

Responsabilidades:
  - Construir AuditLogEntry (actor/acción/entidad + snapshots antes/después).
  - Agregarla en la MISMA transacción que la escritura de negocio.

Colaboradores:
  - domain.audit.AuditLogEntry / snapshot_of
  - domain.repositories.UnitOfWork (audit_log)
  - identity.principal.Principal

Decisiones:
  - No es best-effort: si el append falla, la excepción se propaga y la
    transacción completa se revierte (no hay cambios sin rastro).
  - Append-only: nunca actualiza ni borra entradas.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..domain.audit import AuditLogEntry, snapshot_of
from ..domain.repositories import UnitOfWork
from ..identity.principal import Principal


def record_audit(
    uow: UnitOfWork,
    principal: Principal,
    action: str,
    entity_type: str,
    entity_id: Any,
    *,
    old: Any = None,
    new: Any = None,
    at: datetime | None = None,
) -> AuditLogEntry:
    entry = AuditLogEntry(
        user_id=principal.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        old_value=snapshot_of(old),
        new_value=snapshot_of(new),
        **({"created_at": at} if at is not None else {}),
    )
    uow.audit_log.append(entry)
    return entry
