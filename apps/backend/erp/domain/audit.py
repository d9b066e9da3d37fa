"""
===============================================================================
TARJETA CRC — domain/audit.py
===============================================================================

Módulo:
    Modelos de Auditoría (Dominio)

Responsabilidades:
    - Definir AuditLogEntry (append-only) con snapshots tipados.
    - Convertir entidades a Snapshot (dict JSON) con pydantic.

Colaboradores:
    - application/audit.py: construye y agrega entradas en la transacción.
    - infrastructure/repositories: persisten/listan entradas.

Notas:
    - Snapshot es un dict JSON-serializable: Decimal -> str, UUID -> str,
      fechas -> ISO 8601.
    - Los snapshots NUNCA incluyen password_hash.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict
from uuid import UUID, uuid4

from pydantic import JsonValue
from pydantic_core import to_jsonable_python

from .records import utcnow

Snapshot = Dict[str, JsonValue]

_REDACTED_FIELDS = frozenset({"password_hash"})


@dataclass(frozen=True, kw_only=True)
class AuditLogEntry:
    """Registro inmutable de un cambio (antes/después)."""

    id: UUID = field(default_factory=uuid4)
    user_id: UUID | None
    action: str
    entity_type: str
    entity_id: str
    old_value: Snapshot | None = None
    new_value: Snapshot | None = None
    created_at: datetime = field(default_factory=utcnow)


def snapshot_of(value: Any) -> Snapshot | None:
    """Snapshot JSON de una entidad (o de un dict parcial)."""
    if value is None:
        return None
    data = to_jsonable_python(value)
    if not isinstance(data, dict):
        return {"value": data}
    return {k: v for k, v in data.items() if k not in _REDACTED_FIELDS}
