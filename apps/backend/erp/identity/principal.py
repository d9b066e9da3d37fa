"""
===============================================================================
TARJETA CRC — identity/principal.py
===============================================================================

Módulo:
    Principal (identidad que ejecuta un procedimiento)

Responsabilidades:
    - Representar al usuario autenticado con su conjunto de permisos resuelto.
    - Resolver grants almacenados (códigos crudos) a Permission.

Colaboradores:
    - identity/session.py: construye el Principal en cada request.
    - identity/rbac.py: guards que consultan principal.permissions.
    - domain.setup.Role / domain.permissions.Permission

Reglas:
    - Vive UN request; nunca se cachea entre requests.
    - Fail closed: rol inexistente o códigos desconocidos => sin permiso.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet
from uuid import UUID

from ..crosscutting.logger import logger
from ..domain.permissions import Permission
from ..domain.setup import Role, User


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: UUID
    name: str
    email: str
    role_id: UUID | None = None
    role_name: str | None = None
    permissions: FrozenSet[Permission] = field(default_factory=frozenset)

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.permissions


def resolve_permissions(role: Role | None) -> FrozenSet[Permission]:
    """Códigos del rol -> Permission. Los desconocidos se descartan."""
    if role is None:
        return frozenset()

    resolved: set[Permission] = set()
    for grant in role.permissions:
        try:
            resolved.add(Permission(grant.permission))
        except ValueError:
            logger.warning(
                "Unknown permission code dropped",
                extra={"role_id": str(role.id), "permission": grant.permission},
            )
    return frozenset(resolved)


def principal_for(user: User, role: Role | None) -> Principal:
    return Principal(
        user_id=user.id,
        name=user.name,
        email=user.email,
        role_id=role.id if role else None,
        role_name=role.name if role else None,
        permissions=resolve_permissions(role),
    )
