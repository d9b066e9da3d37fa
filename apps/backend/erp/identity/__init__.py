"""Identidad: sesión (JWT), Principal y guards de permisos."""

from .principal import Principal, resolve_permissions
from .rbac import Authenticated, Guard, Public, RequirePermission

__all__ = [
    "Principal",
    "resolve_permissions",
    "Guard",
    "Public",
    "Authenticated",
    "RequirePermission",
]
