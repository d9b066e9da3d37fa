"""
===============================================================================
TARJETA CRC — identity/session.py
===============================================================================

Módulo:
    Session Resolver (token -> Principal | None)

Responsabilidades:
    - Decodificar el access token.
    - Cargar usuario y rol; resolver permisos a un frozenset.
    - Devolver None ante token ausente/vencido/inválido, usuario inexistente
      o inactivo (nunca levanta: la exigencia de sesión es de los guards).

Colaboradores:
    - identity.auth_users.decode_access_token
    - identity.principal.principal_for
    - domain.repositories.Store

Reglas:
    - Lectura pura (una transacción de solo lectura).
    - Sin caché entre requests: ediciones de rol aplican en el próximo request.
===============================================================================
"""

from __future__ import annotations

from uuid import UUID

from ..crosscutting.exceptions import UnauthenticatedError
from ..crosscutting.logger import logger
from ..domain.repositories import Store
from .auth_users import AuthSettings, decode_access_token
from .principal import Principal, principal_for


def resolve_principal(
    token: str | None, store: Store, settings: AuthSettings | None = None
) -> Principal | None:
    if not token:
        return None

    try:
        payload = decode_access_token(token, settings)
        user_id = UUID(payload.user_id)
    except (UnauthenticatedError, ValueError) as exc:
        logger.info("Session rejected", extra={"reason": str(exc)})
        return None

    with store.transaction() as uow:
        user = uow.users.get(user_id)
        if user is None or not user.is_active:
            return None
        role = uow.roles.get(user.role_id) if user.role_id else None

    return principal_for(user, role)
