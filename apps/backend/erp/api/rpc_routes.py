"""
===============================================================================
TARJETA CRC — erp/api/rpc_routes.py (Transporte HTTP de procedimientos)
===============================================================================

Responsabilidades:
  - GET  /v1/rpc/{name}?input=<json>  -> procedimientos query
  - POST /v1/rpc/{name}  (body JSON)  -> procedimientos mutation
  - GET  /v1/rpc                      -> catálogo (nombre, tipo, permiso)
  - Construir el ProcedureContext explícito por request y serializar
    el resultado (dataclasses, Decimal, UUID, fechas) a JSON.

Colaboradores:
  - container.get_registry / container.get_store
  - api.auth_routes.get_principal
  - application.registry.ProcedureContext

Notas:
  - Endpoints sync: FastAPI los ejecuta en threadpool (el store bloquea).
  - Los errores de la taxonomía viajan a api/exception_handlers.py.
===============================================================================
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic_core import to_jsonable_python

from ..application.registry import (
    ProcedureContext,
    ProcedureKind,
    ProcedureRegistry,
)
from ..container import get_registry, get_store
from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES, method_not_allowed
from ..crosscutting.exceptions import ValidationError
from ..domain.repositories import Store
from ..identity.principal import Principal
from .auth_routes import get_principal

router = APIRouter(prefix="/rpc", tags=["rpc"], responses=OPENAPI_ERROR_RESPONSES)


def _parse_query_input(raw: str | None) -> dict[str, Any]:
    if raw is None or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError.for_field("input", "Input must be valid JSON") from exc
    if not isinstance(value, dict):
        raise ValidationError.for_field("input", "Input must be a JSON object")
    return value


def _dispatch(
    request: Request,
    name: str,
    kind: ProcedureKind,
    raw_input: dict[str, Any],
    registry: ProcedureRegistry,
    store: Store,
    principal: Principal | None,
) -> dict[str, Any]:
    procedure = registry.get(name)
    if procedure.kind != kind:
        verb = "GET" if procedure.kind == ProcedureKind.QUERY else "POST"
        raise method_not_allowed(f"{name} is a {procedure.kind.value}; use {verb}")

    context = ProcedureContext(
        principal=principal,
        store=store,
        settings=get_settings(),
        request_id=getattr(request.state, "request_id", ""),
    )
    result = registry.call(name, context, raw_input)
    return {"data": to_jsonable_python(result)}


@router.get("")
def list_procedures(registry: ProcedureRegistry = Depends(get_registry)):
    """Catálogo de procedimientos registrados."""
    return {
        "procedures": [
            {
                "name": procedure.name,
                "kind": procedure.kind.value,
                "permission": procedure.permission.value if procedure.permission else None,
                "summary": procedure.summary,
            }
            for procedure in sorted(registry, key=lambda p: p.name)
        ]
    }


@router.get("/{name}")
def call_query(
    name: str,
    request: Request,
    input: str | None = Query(default=None, description="JSON-encoded input"),
    registry: ProcedureRegistry = Depends(get_registry),
    store: Store = Depends(get_store),
    principal: Principal | None = Depends(get_principal),
):
    return _dispatch(
        request, name, ProcedureKind.QUERY, _parse_query_input(input),
        registry, store, principal,
    )


@router.post("/{name}")
def call_mutation(
    name: str,
    request: Request,
    payload: dict[str, Any] | None = Body(default=None),
    registry: ProcedureRegistry = Depends(get_registry),
    store: Store = Depends(get_store),
    principal: Principal | None = Depends(get_principal),
):
    return _dispatch(
        request, name, ProcedureKind.MUTATION, payload or {},
        registry, store, principal,
    )
