"""
===============================================================================
TARJETA CRC — application/procedures/auth.py
===============================================================================

Procedimientos:
  - auth.get_session (público)
  - auth.get_user / update_profile / change_password
  - auth.get_notifications / mark_notification_read /
    mark_all_notifications_read / get_unread_notification_count

Reglas:
  - change_password verifica la contraseña actual; la nueva tiene >= 8 chars.
  - Un usuario solo ve y marca SUS notificaciones (ajenas => NotFound).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from pydantic import Field

from ...crosscutting.exceptions import NotFoundError, PreconditionFailedError
from ...identity.auth_users import hash_password, verify_password
from ..audit import record_audit
from ..registry import ProcedureContext, ProcedureRouter
from ._common import Input, UpdateInput, UserView, get_or_404, touch, view_user

router = ProcedureRouter("auth")


@dataclass(frozen=True)
class SessionInfo:
    authenticated: bool
    user_id: UUID | None = None
    name: str | None = None
    email: str | None = None
    role: str | None = None
    permissions: tuple[str, ...] = ()


class UpdateProfileInput(UpdateInput):
    clearable = frozenset({"phone", "avatar"})

    name: str | None = Field(default=None, min_length=1, max_length=200)
    phone: str | None = Field(default=None, max_length=50)
    avatar: str | None = Field(default=None, max_length=500)


class ChangePasswordInput(Input):
    current_password: str = Field(min_length=1, max_length=512)
    new_password: str = Field(min_length=8, max_length=512)


class NotificationsInput(Input):
    unread_only: bool = False
    limit: int = Field(default=20, ge=1, le=100)


class NotificationIdInput(Input):
    id: UUID


@router.query("get_session", public=True)
def get_session(ctx: ProcedureContext, data: Input) -> SessionInfo:
    """Sesión actual (vacía si no hay login)."""
    principal = ctx.principal
    if principal is None:
        return SessionInfo(authenticated=False)
    return SessionInfo(
        authenticated=True,
        user_id=principal.user_id,
        name=principal.name,
        email=principal.email,
        role=principal.role_name,
        permissions=tuple(sorted(p.value for p in principal.permissions)),
    )


@router.query("get_user")
def get_user(ctx: ProcedureContext, data: Input) -> UserView:
    """Perfil del usuario autenticado."""
    with ctx.store.transaction() as uow:
        return view_user(uow, get_or_404(uow.users, ctx.actor.user_id, "User"))


@router.mutation("update_profile", input=UpdateProfileInput)
def update_profile(ctx: ProcedureContext, data: UpdateProfileInput) -> UserView:
    """Actualiza nombre, teléfono o avatar propios."""
    with ctx.store.transaction() as uow:
        user = get_or_404(uow.users, ctx.actor.user_id, "User")
        updated = uow.users.update(
            touch(ctx, user, **data.model_dump(exclude_unset=True))
        )
        record_audit(uow, ctx.actor, "update", "User", user.id, old=user, new=updated)
        return view_user(uow, updated)


@router.mutation("change_password", input=ChangePasswordInput)
def change_password(ctx: ProcedureContext, data: ChangePasswordInput) -> dict:
    """Cambia la contraseña propia (requiere la actual)."""
    with ctx.store.transaction() as uow:
        user = get_or_404(uow.users, ctx.actor.user_id, "User")
        if not verify_password(data.current_password, user.password_hash):
            raise PreconditionFailedError("Current password is incorrect")
        uow.users.update(
            touch(ctx, user, password_hash=hash_password(data.new_password))
        )
        record_audit(uow, ctx.actor, "change_password", "User", user.id)
    return {"success": True}


@router.query("get_notifications", input=NotificationsInput)
def get_notifications(ctx: ProcedureContext, data: NotificationsInput):
    with ctx.store.transaction() as uow:
        return uow.notifications.list_for_user(
            ctx.actor.user_id, unread_only=data.unread_only, limit=data.limit
        )


@router.mutation("mark_notification_read", input=NotificationIdInput)
def mark_notification_read(ctx: ProcedureContext, data: NotificationIdInput):
    with ctx.store.transaction() as uow:
        notification = uow.notifications.get(data.id)
        if notification is None or notification.user_id != ctx.actor.user_id:
            raise NotFoundError("Notification", data.id)
        uow.notifications.mark_read(data.id, ctx.now())
        return uow.notifications.get(data.id)


@router.mutation("mark_all_notifications_read")
def mark_all_notifications_read(ctx: ProcedureContext, data: Input) -> dict:
    with ctx.store.transaction() as uow:
        count = uow.notifications.mark_all_read(ctx.actor.user_id, ctx.now())
    return {"count": count}


@router.query("get_unread_notification_count")
def get_unread_notification_count(ctx: ProcedureContext, data: Input) -> dict:
    with ctx.store.transaction() as uow:
        return {"count": uow.notifications.count_unread(ctx.actor.user_id)}
