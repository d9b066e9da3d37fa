"""
===============================================================================
TARJETA CRC — domain/setup.py
===============================================================================

Módulo:
    Administración: usuarios, roles y campos personalizados

Responsabilidades:
    - Definir User, Role (grants embebidos) y CustomField.
    - Guardar grants como códigos crudos: la resolución a Permission ocurre
      al construir el Principal (códigos desconocidos se descartan).

Colaboradores:
    - identity/session.py
    - application/procedures/setup.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from .permissions import AccessLevel
from .records import Record


@dataclass(frozen=True, kw_only=True)
class User(Record):
    email: str
    name: str
    password_hash: str
    role_id: UUID | None = None
    is_active: bool = True
    phone: str | None = None
    avatar: str | None = None
    last_login_at: datetime | None = None

    def business_key(self) -> str | None:
        return self.email.strip().lower()


@dataclass(frozen=True, kw_only=True)
class RolePermissionGrant:
    permission: str
    access_level: AccessLevel = AccessLevel.FULL


@dataclass(frozen=True, kw_only=True)
class Role(Record):
    name: str
    description: str | None = None
    is_system: bool = False
    permissions: tuple[RolePermissionGrant, ...] = ()

    def business_key(self) -> str | None:
        return self.name.strip().lower()


class CustomFieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"


@dataclass(frozen=True, kw_only=True)
class CustomField(Record):
    entity_type: str
    name: str
    label: str
    field_type: CustomFieldType = CustomFieldType.TEXT
    options: tuple[str, ...] = ()
    is_required: bool = False
    is_active: bool = True

    def business_key(self) -> str | None:
        return f"{self.entity_type}:{self.name}"
