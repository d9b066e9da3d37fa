"""
===============================================================================
TARJETA CRC — application/registry.py
===============================================================================

Módulo:
    Procedure Registry (procedimientos con nombre, guard e input tipado)

Responsabilidades:
    - Declarar procedimientos por módulo con ProcedureRouter
      (@router.query / @router.mutation).
    - Unir routers en un ProcedureRegistry con nombres "<módulo>.<operación>".
    - Rechazar nombres duplicados al definir.
    - Despachar una llamada: guard -> validación de input -> handler.
    - Registrar resultado y duración (métricas) y contexto de logs.

Colaboradores:
    - identity.rbac: guards (Public / Authenticated / RequirePermission)
    - pydantic: validación del input declarado
    - crosscutting.exceptions: taxonomía de errores
    - crosscutting.metrics.record_procedure_call
    - erp/context.py: correlación de logs (procedure/user_id)

Reglas:
    - El handler recibe un ProcedureContext explícito; no hay sesión global.
    - Si el guard falla, el input NO se valida y el handler NO se ejecuta.
===============================================================================
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ..context import set_procedure_context
from ..crosscutting.config import Settings, get_settings
from ..crosscutting.exceptions import (
    ErpError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_procedure_call
from ..domain.permissions import Permission
from ..domain.records import utcnow
from ..domain.repositories import Store
from ..identity.principal import Principal
from ..identity.rbac import Authenticated, Guard, Public, RequirePermission


class ProcedureKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"


class EmptyInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


@dataclass(frozen=True)
class ProcedureContext:
    """Todo lo que un handler necesita; se construye por llamada."""

    principal: Principal | None
    store: Store
    settings: Settings = field(default_factory=get_settings)
    request_id: str = ""
    clock: Callable[[], datetime] = utcnow

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> date:
        return self.clock().date()

    @property
    def actor(self) -> Principal:
        """Principal garantizado por el guard (procedimientos no públicos)."""
        if self.principal is None:
            raise UnauthenticatedError()
        return self.principal


Handler = Callable[[ProcedureContext, BaseModel], Any]


@dataclass(frozen=True)
class Procedure:
    name: str
    kind: ProcedureKind
    input_model: type[BaseModel]
    guard: Guard
    handler: Handler
    summary: str = ""

    @property
    def permission(self) -> Permission | None:
        return getattr(self.guard, "permission", None)

    def parse(self, raw_input: Mapping[str, Any] | None) -> BaseModel:
        try:
            return self.input_model.model_validate(raw_input or {})
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid input", field_errors=field_errors_from(exc)
            ) from exc


def field_errors_from(exc: PydanticValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
        errors.setdefault(path, []).append(error.get("msg", "Invalid value"))
    return errors


def _guard_for(permission: Permission | None, public: bool) -> Guard:
    if public:
        return Public()
    if permission is not None:
        return RequirePermission(permission)
    return Authenticated()


class ProcedureRouter:
    """Colección de procedimientos de un módulo (prefijo de nombre)."""

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._procedures: dict[str, Procedure] = {}

    def _register(
        self,
        kind: ProcedureKind,
        name: str,
        *,
        input: type[BaseModel] | None,
        permission: Permission | None,
        public: bool,
    ) -> Callable[[Handler], Handler]:
        full_name = f"{self.namespace}.{name}"

        def decorator(handler: Handler) -> Handler:
            if full_name in self._procedures:
                raise ValueError(f"Duplicate procedure: {full_name}")
            self._procedures[full_name] = Procedure(
                name=full_name,
                kind=kind,
                input_model=input or EmptyInput,
                guard=_guard_for(permission, public),
                handler=handler,
                summary=(handler.__doc__ or "").strip().splitlines()[0]
                if handler.__doc__
                else "",
            )
            return handler

        return decorator

    def query(
        self,
        name: str,
        *,
        input: type[BaseModel] | None = None,
        permission: Permission | None = None,
        public: bool = False,
    ):
        return self._register(
            ProcedureKind.QUERY, name, input=input, permission=permission, public=public
        )

    def mutation(
        self,
        name: str,
        *,
        input: type[BaseModel] | None = None,
        permission: Permission | None = None,
        public: bool = False,
    ):
        return self._register(
            ProcedureKind.MUTATION,
            name,
            input=input,
            permission=permission,
            public=public,
        )

    def __iter__(self) -> Iterator[Procedure]:
        return iter(self._procedures.values())


class ProcedureRegistry:
    def __init__(self) -> None:
        self._procedures: dict[str, Procedure] = {}

    def include(self, router: ProcedureRouter) -> None:
        for procedure in router:
            if procedure.name in self._procedures:
                raise ValueError(f"Duplicate procedure: {procedure.name}")
            self._procedures[procedure.name] = procedure

    def get(self, name: str) -> Procedure:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise NotFoundError("Procedure", name)
        return procedure

    def names(self) -> list[str]:
        return sorted(self._procedures)

    def __iter__(self) -> Iterator[Procedure]:
        return iter(self._procedures.values())

    def __len__(self) -> int:
        return len(self._procedures)

    def call(
        self,
        name: str,
        context: ProcedureContext,
        raw_input: Mapping[str, Any] | None = None,
    ) -> Any:
        procedure = self.get(name)
        principal = context.principal
        set_procedure_context(
            procedure=name, user_id=str(principal.user_id) if principal else ""
        )

        start = time.perf_counter()
        outcome = "ok"
        try:
            procedure.guard.check(principal, name)
            data = procedure.parse(raw_input)
            return procedure.handler(context, data)
        except ErpError as exc:
            outcome = exc.error_code
            if exc.error_code in {"PRECONDITION_FAILED", "CONFLICT"}:
                logger.info(
                    "Procedure rejected by business rule",
                    extra={"error_code": exc.error_code, "detail": exc.message},
                )
            raise
        except Exception:
            outcome = "INTERNAL_ERROR"
            raise
        finally:
            record_procedure_call(
                name, procedure.kind.value, outcome, time.perf_counter() - start
            )
