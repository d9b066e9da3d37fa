"""
===============================================================================
TARJETA CRC — domain/records.py
===============================================================================

Módulo:
    Base de registros persistidos

Responsabilidades:
    - Definir campos comunes (id, created_at, updated_at).
    - Exponer la clave de negocio única de cada registro (business_key).

Colaboradores:
    - domain.* : todas las entidades heredan de Record.
    - infrastructure/repositories: usan business_key() para unicidad y
      serializan con pydantic TypeAdapter.

Principios:
    - Registros inmutables (frozen): los cambios se expresan con dataclasses.replace.
    - Sin dependencias a DB/FastAPI.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4


def utcnow() -> datetime:
    """Fecha/hora UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class Address:
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


@dataclass(frozen=True, kw_only=True)
class Record:
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def business_key(self) -> str | None:
        """Clave única de negocio (None = sin restricción de unicidad)."""
        return None
