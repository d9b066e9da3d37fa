"""
===============================================================================
TARJETA CRC — application/procedures/setup.py
===============================================================================

Procedimientos (permisos setup:*):
  - Usuarios:  get_users / get_user / get_user_stats / create_user /
               update_user / reset_user_password
  - Roles:     get_roles / get_role / create_role / update_role / delete_role /
               duplicate_role / update_role_permissions
  - Otros:     get_permissions / get_custom_fields / create_custom_field /
               get_audit_logs (paginado) / global_search (solo autenticado)

Reglas de negocio:
  R1) Email de usuario único (case-insensitive) => Conflict.
  R2) Contraseñas >= 8 caracteres, guardadas con argon2; nunca se devuelven.
  R3) Un rol de sistema rechaza update / delete / cambio de permisos con
      Forbidden, sin importar los permisos del llamador.
  R4) Un rol con usuarios asignados no se borra (PreconditionFailed).
  R5) Un rol duplicado nunca es de sistema.
  R6) Los cambios de rol/permisos valen desde el próximo request (el
      Principal se resuelve por request; no hay caché).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from ...crosscutting.exceptions import ForbiddenError, PreconditionFailedError
from ...domain.audit import AuditLogEntry
from ...domain.inventory import Item
from ...domain.parties import Customer, Vendor
from ...domain.people import Employee
from ...domain.permissions import AccessLevel, Permission
from ...domain.purchasing import PurchaseOrder
from ...domain.repositories import UnitOfWork
from ...domain.sales import SalesOrder
from ...domain.setup import CustomField, CustomFieldType, Role, RolePermissionGrant, User
from ...identity.auth_users import hash_password
from ..audit import record_audit
from ..registry import ProcedureContext, ProcedureRouter
from ._common import (
    Email,
    IdInput,
    Input,
    ListInput,
    Page,
    UpdateInput,
    UserView,
    add_unique,
    changes_of,
    get_or_404,
    page_limit,
    present,
    touch,
    update_unique,
    view_user,
)

router = ProcedureRouter("setup")

_SEARCH_LIMIT = 5


class UserListInput(ListInput):
    role_id: UUID | None = None
    is_active: bool | None = None


class CreateUserInput(Input):
    email: Email
    name: str = Field(min_length=1, max_length=200)
    password: str = Field(min_length=8, max_length=512)
    role_id: UUID | None = None
    phone: str | None = Field(default=None, max_length=50)


class UpdateUserInput(UpdateInput):
    clearable = frozenset({"role_id", "phone"})

    id: UUID
    email: Email | None = None
    name: str | None = Field(default=None, min_length=1, max_length=200)
    role_id: UUID | None = None
    phone: str | None = Field(default=None, max_length=50)
    is_active: bool | None = None


class ResetPasswordInput(Input):
    id: UUID
    new_password: str = Field(min_length=8, max_length=512)


class GrantInput(Input):
    permission: Permission
    access_level: AccessLevel = AccessLevel.FULL


class CreateRoleInput(Input):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    permissions: list[GrantInput] = Field(default_factory=list)


class UpdateRoleInput(UpdateInput):
    clearable = frozenset({"description"})

    id: UUID
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)


class DuplicateRoleInput(Input):
    id: UUID
    name: str = Field(min_length=1, max_length=100)


class RolePermissionsInput(Input):
    role_id: UUID
    permissions: list[GrantInput]


class CustomFieldListInput(Input):
    entity_type: str | None = Field(default=None, max_length=50)
    is_active: bool | None = None


class CreateCustomFieldInput(Input):
    entity_type: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=50, pattern=r"^[a-z][a-z0-9_]*$")
    label: str = Field(min_length=1, max_length=100)
    field_type: CustomFieldType = CustomFieldType.TEXT
    options: list[str] = Field(default_factory=list)
    is_required: bool = False

    @model_validator(mode="after")
    def select_needs_options(self):
        if self.field_type == CustomFieldType.SELECT and not self.options:
            raise ValueError("Select fields need at least one option")
        return self


class AuditLogInput(Input):
    user_id: UUID | None = None
    entity_type: str | None = Field(default=None, max_length=100)
    entity_id: str | None = Field(default=None, max_length=100)
    action: str | None = Field(default=None, max_length=50)
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class GlobalSearchInput(Input):
    query: str = Field(min_length=1, max_length=200)


@dataclass(frozen=True)
class UserStats:
    total_users: int
    active_users: int
    roles_count: int


@dataclass(frozen=True)
class RoleView:
    role: Role
    user_count: int


@dataclass(frozen=True)
class PermissionInfo:
    code: str
    module: str
    action: str


@dataclass(frozen=True)
class GlobalSearchResults:
    customers: list[Customer]
    vendors: list[Vendor]
    sales_orders: list[SalesOrder]
    purchase_orders: list[PurchaseOrder]
    items: list[Item]
    employees: list[Employee]


def _grants(grants: list[GrantInput]) -> tuple[RolePermissionGrant, ...]:
    unique = {g.permission: g.access_level for g in grants}
    return tuple(
        RolePermissionGrant(permission=p.value, access_level=level)
        for p, level in sorted(unique.items(), key=lambda kv: kv[0].value)
    )


def _mutable_role(uow: UnitOfWork, role_id: UUID, message: str) -> Role:
    role = get_or_404(uow.roles, role_id, "Role")
    if role.is_system:
        raise ForbiddenError(message)
    return role


# ---------------------------------------------------------------------------
# Usuarios
# ---------------------------------------------------------------------------


@router.query("get_users", input=UserListInput, permission=Permission.SETUP_VIEW)
def get_users(ctx: ProcedureContext, data: UserListInput) -> Page[UserView]:
    limit = page_limit(ctx, data.limit)
    filters = present(role_id=data.role_id, is_active=data.is_active)
    with ctx.store.transaction() as uow:
        users = uow.users.list(
            filters=filters,
            search=data.search,
            search_fields=("name", "email"),
            order_by="name",
            descending=False,
        )
        page = users[data.offset : data.offset + limit]
        return Page(
            items=[view_user(uow, u) for u in page],
            total=len(users),
            limit=limit,
            offset=data.offset,
        )


@router.query("get_user", input=IdInput, permission=Permission.SETUP_VIEW)
def get_user(ctx: ProcedureContext, data: IdInput) -> UserView:
    with ctx.store.transaction() as uow:
        return view_user(uow, get_or_404(uow.users, data.id, "User"))


@router.query("get_user_stats", permission=Permission.SETUP_VIEW)
def get_user_stats(ctx: ProcedureContext, data: Input) -> UserStats:
    with ctx.store.transaction() as uow:
        return UserStats(
            total_users=uow.users.count(),
            active_users=uow.users.count({"is_active": True}),
            roles_count=uow.roles.count(),
        )


@router.mutation("create_user", input=CreateUserInput, permission=Permission.SETUP_CREATE)
def create_user(ctx: ProcedureContext, data: CreateUserInput) -> UserView:
    now = ctx.now()
    user = User(
        email=data.email.lower(),
        name=data.name,
        password_hash=hash_password(data.password),
        role_id=data.role_id,
        phone=data.phone,
        created_at=now,
        updated_at=now,
    )
    with ctx.store.transaction() as uow:
        if data.role_id is not None:
            get_or_404(uow.roles, data.role_id, "Role")
        add_unique(uow.users, user, "User with this email already exists")
        record_audit(uow, ctx.actor, "create", "User", user.id, new=user, at=now)
        return view_user(uow, user)


@router.mutation("update_user", input=UpdateUserInput, permission=Permission.SETUP_EDIT)
def update_user(ctx: ProcedureContext, data: UpdateUserInput) -> UserView:
    with ctx.store.transaction() as uow:
        user = get_or_404(uow.users, data.id, "User")
        if data.role_id is not None:
            get_or_404(uow.roles, data.role_id, "Role")
        changes = changes_of(data)
        if "email" in changes:
            changes["email"] = changes["email"].lower()
        updated = update_unique(
            uow.users, touch(ctx, user, **changes), "User with this email already exists"
        )
        record_audit(uow, ctx.actor, "update", "User", user.id, old=user, new=updated)
        return view_user(uow, updated)


@router.mutation("reset_user_password", input=ResetPasswordInput, permission=Permission.SETUP_EDIT)
def reset_user_password(ctx: ProcedureContext, data: ResetPasswordInput) -> dict:
    with ctx.store.transaction() as uow:
        user = get_or_404(uow.users, data.id, "User")
        uow.users.update(touch(ctx, user, password_hash=hash_password(data.new_password)))
        record_audit(uow, ctx.actor, "reset_password", "User", user.id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@router.query("get_roles", permission=Permission.SETUP_VIEW)
def get_roles(ctx: ProcedureContext, data: Input) -> list[RoleView]:
    with ctx.store.transaction() as uow:
        return [
            RoleView(role=role, user_count=uow.users.count({"role_id": role.id}))
            for role in uow.roles.list(order_by="name", descending=False)
        ]


@router.query("get_role", input=IdInput, permission=Permission.SETUP_VIEW)
def get_role(ctx: ProcedureContext, data: IdInput) -> RoleView:
    with ctx.store.transaction() as uow:
        role = get_or_404(uow.roles, data.id, "Role")
        return RoleView(role=role, user_count=uow.users.count({"role_id": role.id}))


@router.mutation("create_role", input=CreateRoleInput, permission=Permission.SETUP_CREATE)
def create_role(ctx: ProcedureContext, data: CreateRoleInput) -> Role:
    now = ctx.now()
    role = Role(
        name=data.name,
        description=data.description,
        permissions=_grants(data.permissions),
        created_at=now,
        updated_at=now,
    )
    with ctx.store.transaction() as uow:
        add_unique(uow.roles, role, "Role name already exists")
        record_audit(uow, ctx.actor, "create", "Role", role.id, new=role, at=now)
        return role


@router.mutation("update_role", input=UpdateRoleInput, permission=Permission.SETUP_EDIT)
def update_role(ctx: ProcedureContext, data: UpdateRoleInput) -> Role:
    with ctx.store.transaction() as uow:
        role = _mutable_role(uow, data.id, "System roles cannot be modified")
        updated = update_unique(
            uow.roles, touch(ctx, role, **changes_of(data)), "Role name already exists"
        )
        record_audit(uow, ctx.actor, "update", "Role", role.id, old=role, new=updated)
        return updated


@router.mutation("delete_role", input=IdInput, permission=Permission.SETUP_DELETE)
def delete_role(ctx: ProcedureContext, data: IdInput) -> dict:
    with ctx.store.transaction() as uow:
        role = _mutable_role(uow, data.id, "System roles cannot be deleted")
        assigned = uow.users.count({"role_id": role.id})
        if assigned > 0:
            raise PreconditionFailedError(
                f"Cannot delete role with {assigned} assigned user(s). Reassign them first."
            )
        uow.roles.delete(role.id)
        record_audit(uow, ctx.actor, "delete", "Role", role.id, old=role)
    return {"success": True}


@router.mutation("duplicate_role", input=DuplicateRoleInput, permission=Permission.SETUP_CREATE)
def duplicate_role(ctx: ProcedureContext, data: DuplicateRoleInput) -> Role:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        source = get_or_404(uow.roles, data.id, "Source role")
        description = (
            f"Copy of {source.name}: {source.description}"
            if source.description
            else f"Copy of {source.name}"
        )
        role = Role(
            name=data.name,
            description=description,
            is_system=False,
            permissions=source.permissions,
            created_at=now,
            updated_at=now,
        )
        add_unique(uow.roles, role, "Role name already exists")
        record_audit(uow, ctx.actor, "create", "Role", role.id, new=role, at=now)
        return role


@router.mutation("update_role_permissions", input=RolePermissionsInput, permission=Permission.SETUP_EDIT)
def update_role_permissions(ctx: ProcedureContext, data: RolePermissionsInput) -> Role:
    with ctx.store.transaction() as uow:
        role = _mutable_role(uow, data.role_id, "System role permissions cannot be modified")
        updated = uow.roles.update(touch(ctx, role, permissions=_grants(data.permissions)))
        record_audit(
            uow, ctx.actor, "update", "RolePermission", role.id,
            old={"permissions": role.permissions},
            new={"permissions": updated.permissions},
        )
        return updated


# ---------------------------------------------------------------------------
# Permisos, campos personalizados, auditoría y búsqueda
# ---------------------------------------------------------------------------


@router.query("get_permissions", permission=Permission.SETUP_VIEW)
def get_permissions(ctx: ProcedureContext, data: Input) -> list[PermissionInfo]:
    return [
        PermissionInfo(code=p.value, module=p.module, action=p.action)
        for p in sorted(Permission, key=lambda p: (p.module, p.action))
    ]


@router.query("get_custom_fields", input=CustomFieldListInput, permission=Permission.SETUP_VIEW)
def get_custom_fields(ctx: ProcedureContext, data: CustomFieldListInput) -> list[CustomField]:
    with ctx.store.transaction() as uow:
        return uow.custom_fields.list(
            filters=present(entity_type=data.entity_type, is_active=data.is_active),
            order_by="label",
            descending=False,
        )


@router.mutation("create_custom_field", input=CreateCustomFieldInput, permission=Permission.SETUP_CREATE)
def create_custom_field(ctx: ProcedureContext, data: CreateCustomFieldInput) -> CustomField:
    now = ctx.now()
    field = CustomField(
        entity_type=data.entity_type,
        name=data.name,
        label=data.label,
        field_type=data.field_type,
        options=tuple(data.options),
        is_required=data.is_required,
        created_at=now,
        updated_at=now,
    )
    with ctx.store.transaction() as uow:
        add_unique(
            uow.custom_fields,
            field,
            f"Custom field {data.name} already exists for {data.entity_type}",
        )
        record_audit(uow, ctx.actor, "create", "CustomField", field.id, new=field, at=now)
        return field


@router.query("get_audit_logs", input=AuditLogInput, permission=Permission.SETUP_VIEW)
def get_audit_logs(ctx: ProcedureContext, data: AuditLogInput) -> Page[AuditLogEntry]:
    limit = page_limit(ctx, data.limit)
    filters = data.model_dump(include={"user_id", "entity_type", "entity_id", "action", "date_from", "date_to"})
    with ctx.store.transaction() as uow:
        return Page(
            items=uow.audit_log.list_entries(limit=limit, offset=data.offset, **filters),
            total=uow.audit_log.count_entries(**filters),
            limit=limit,
            offset=data.offset,
        )


@router.query("global_search", input=GlobalSearchInput)
def global_search(ctx: ProcedureContext, data: GlobalSearchInput) -> GlobalSearchResults:
    """Búsqueda transversal (5 resultados por tipo)."""
    term = data.query
    with ctx.store.transaction() as uow:
        return GlobalSearchResults(
            customers=uow.customers.list(
                search=term,
                search_fields=("company_name", "customer_number", "email"),
                limit=_SEARCH_LIMIT,
            ),
            vendors=uow.vendors.list(
                search=term, search_fields=("company_name", "vendor_number"), limit=_SEARCH_LIMIT
            ),
            sales_orders=uow.sales_orders.list(
                search=term, search_fields=("order_number",), limit=_SEARCH_LIMIT
            ),
            purchase_orders=uow.purchase_orders.list(
                search=term, search_fields=("po_number",), limit=_SEARCH_LIMIT
            ),
            items=uow.items.list(search=term, search_fields=("name", "sku"), limit=_SEARCH_LIMIT),
            employees=uow.employees.list(
                search=term,
                search_fields=("first_name", "last_name", "employee_number"),
                limit=_SEARCH_LIMIT,
            ),
        )
