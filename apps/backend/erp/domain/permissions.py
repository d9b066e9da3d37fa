"""
===============================================================================
TARJETA CRC — domain/permissions.py
===============================================================================

Módulo:
    Catálogo cerrado de permisos (module:action)

Responsabilidades:
    - Enumerar TODOS los códigos de permiso válidos.
    - Rechazar códigos desconocidos en construcción (Permission("x:y") -> ValueError).
    - Describir niveles de acceso de un grant (informativos).

Colaboradores:
    - identity/rbac.py: guards que comparan contra Principal.permissions.
    - identity/session.py: resuelve grants almacenados a Permission.
    - application/procedures/setup.py: get_permissions / update_role_permissions.
===============================================================================
"""

from __future__ import annotations

from enum import Enum


class Permission(str, Enum):
    SALES_VIEW = "sales:view"
    SALES_CREATE = "sales:create"
    SALES_EDIT = "sales:edit"
    SALES_DELETE = "sales:delete"

    PURCHASING_VIEW = "purchasing:view"
    PURCHASING_CREATE = "purchasing:create"
    PURCHASING_EDIT = "purchasing:edit"
    PURCHASING_DELETE = "purchasing:delete"

    INVENTORY_VIEW = "inventory:view"
    INVENTORY_CREATE = "inventory:create"
    INVENTORY_EDIT = "inventory:edit"
    INVENTORY_DELETE = "inventory:delete"

    FINANCE_VIEW = "finance:view"
    FINANCE_CREATE = "finance:create"
    FINANCE_EDIT = "finance:edit"
    FINANCE_DELETE = "finance:delete"

    PAYROLL_VIEW = "payroll:view"
    PAYROLL_CREATE = "payroll:create"
    PAYROLL_EDIT = "payroll:edit"
    PAYROLL_DELETE = "payroll:delete"

    REPORTS_VIEW = "reports:view"
    REPORTS_CREATE = "reports:create"
    REPORTS_EDIT = "reports:edit"
    REPORTS_DELETE = "reports:delete"

    SETUP_VIEW = "setup:view"
    SETUP_CREATE = "setup:create"
    SETUP_EDIT = "setup:edit"
    SETUP_DELETE = "setup:delete"

    @property
    def module(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]


class AccessLevel(str, Enum):
    """Nivel de acceso de un grant. No participa del chequeo de permisos."""

    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    FULL = "full"


def permission_modules() -> list[str]:
    """Módulos en orden de declaración (sin duplicados)."""
    return list(dict.fromkeys(p.module for p in Permission))
