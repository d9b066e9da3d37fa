"""
===============================================================================
TARJETA CRC — identity/rbac.py
===============================================================================

Módulo:
    Guards de procedimientos (Public / Authenticated / RequirePermission)

Responsabilidades:
    - Rechazar la llamada ANTES del handler si falta sesión o permiso.
    - Loguear y contar denegaciones (procedimiento + permiso faltante).
    - Describir el requisito para OpenAPI.

Colaboradores:
    - identity.principal.Principal
    - domain.permissions.Permission (catálogo cerrado)
    - crosscutting.exceptions: UnauthenticatedError / ForbiddenError
    - crosscutting.metrics.record_denial

Notas de diseño:
    - El permiso se fija al DEFINIR el procedimiento, no por request.
    - Chequeo O(1) contra el frozenset del Principal.
    - Principal sin rol o sin permisos => Forbidden (fail closed).
===============================================================================
"""

from __future__ import annotations

from typing import Protocol

from ..crosscutting.exceptions import ForbiddenError, UnauthenticatedError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_denial
from ..domain.permissions import Permission
from .principal import Principal


class Guard(Protocol):
    def check(self, principal: Principal | None, procedure: str) -> None: ...

    def describe(self) -> str: ...


class Public:
    """Sin requisito: la sesión es opcional."""

    def check(self, principal: Principal | None, procedure: str) -> None:
        return None

    def describe(self) -> str:
        return "public"


class Authenticated:
    """Requiere sesión válida, sin permiso específico."""

    def check(self, principal: Principal | None, procedure: str) -> None:
        if principal is None:
            logger.warning(
                "Procedure denied: unauthenticated", extra={"procedure": procedure}
            )
            record_denial(procedure, "unauthenticated")
            raise UnauthenticatedError()

    def describe(self) -> str:
        return "authenticated"


class RequirePermission(Authenticated):
    def __init__(self, permission: Permission):
        self.permission = Permission(permission)

    def check(self, principal: Principal | None, procedure: str) -> None:
        super().check(principal, procedure)
        if not principal.has_permission(self.permission):
            logger.warning(
                "Procedure denied: missing permission",
                extra={"procedure": procedure, "permission": self.permission.value},
            )
            record_denial(procedure, "forbidden")
            raise ForbiddenError(
                f"Missing permission: {self.permission.value}",
                permission=self.permission.value,
            )

    def describe(self) -> str:
        return self.permission.value
