"""
===============================================================================
TARJETA CRC — application/procedures/_common.py
===============================================================================

Responsabilidades:
  - Inputs reutilizables (IdInput, ListInput, AddressInput).
  - Helpers de handlers: get_or_404, touch (replace + updated_at),
    conversión de cambios parciales, Page para listados con total.

Colaboradores:
  - application/procedures/* (todos los módulos)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Annotated, Any, ClassVar, Generic, Iterable, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ...crosscutting.exceptions import ConflictError, DuplicateKeyError, NotFoundError
from ...domain.records import Address, Record
from ...domain.repositories import RecordRepository, UnitOfWork
from ...domain.setup import User
from ..registry import ProcedureContext

T = TypeVar("T", bound=Record)
ItemT = TypeVar("ItemT")

Email = Annotated[
    str, Field(max_length=320, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
]


class Input(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class UpdateInput(Input):
    """
    Update parcial: un campo ausente no cambia; un null explícito solo se
    acepta en los campos de `clearable` (el resto da error de validación).
    """

    clearable: ClassVar[frozenset[str]] = frozenset()

    @field_validator("*", mode="before")
    @classmethod
    def _null_only_when_clearable(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name not in cls.clearable:
            raise ValueError("Field cannot be null")
        return value


class IdInput(Input):
    id: UUID


class ListInput(Input):
    search: str | None = Field(default=None, max_length=200)
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class AddressInput(Input):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None

    def to_domain(self) -> Address:
        return Address(**self.model_dump())


@dataclass(frozen=True)
class Page(Generic[ItemT]):
    items: list[ItemT]
    total: int
    limit: int
    offset: int


def page_limit(ctx: ProcedureContext, limit: int | None) -> int:
    settings = ctx.settings
    return min(limit or settings.default_page_size, settings.max_page_size)


def get_or_404(repository: RecordRepository[T], record_id: UUID, resource: str) -> T:
    record = repository.get(record_id)
    if record is None:
        raise NotFoundError(resource, record_id)
    return record


def touch(ctx: ProcedureContext, record: T, **changes: Any) -> T:
    return replace(record, updated_at=ctx.now(), **changes)


def changes_of(data: BaseModel, *, exclude: Iterable[str] = ("id",)) -> dict[str, Any]:
    """Campos enviados explícitamente (update parcial), con sub-modelos convertidos."""
    changes: dict[str, Any] = {}
    for name in data.model_fields_set - set(exclude):
        value = getattr(data, name)
        if isinstance(value, AddressInput):
            value = value.to_domain()
        changes[name] = value
    return changes


def add_unique(repository: RecordRepository[T], record: T, message: str) -> T:
    try:
        return repository.add(record)
    except DuplicateKeyError as exc:
        raise ConflictError(message) from exc


def update_unique(repository: RecordRepository[T], record: T, message: str) -> T:
    try:
        return repository.update(record)
    except DuplicateKeyError as exc:
        raise ConflictError(message) from exc


def present(**values: Any) -> dict[str, Any]:
    """Filtros de igualdad, omitiendo los no enviados."""
    return {name: value for name, value in values.items() if value is not None}


@dataclass(frozen=True)
class UserView:
    """Usuario sin password_hash (lo que sale por la API)."""

    id: UUID
    email: str
    name: str
    role_id: UUID | None
    role_name: str | None
    is_active: bool
    phone: str | None
    avatar: str | None
    last_login_at: datetime | None
    created_at: datetime


def view_user(uow: UnitOfWork, user: User) -> UserView:
    role = uow.roles.get(user.role_id) if user.role_id else None
    return UserView(
        id=user.id,
        email=user.email,
        name=user.name,
        role_id=user.role_id,
        role_name=role.name if role else None,
        is_active=user.is_active,
        phone=user.phone,
        avatar=user.avatar,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )
