"""
===============================================================================
TARJETA CRC — erp/context.py (Contexto de correlación por request)
===============================================================================

Responsabilidades:
  - Mantener datos de correlación “request-scoped” usando ContextVars.
  - Enriquecer logs con request_id, usuario y procedimiento en curso.

Colaboradores:
  - erp.crosscutting.middleware: setea request_id/method/path.
  - erp.application.registry: setea user_id/procedure al despachar.
  - erp.crosscutting.logger: lee get_context_dict().

Restricciones:
  - SOLO correlación para logs. Los handlers de negocio reciben el
    ProcedureContext explícito; nunca leen identidad desde aquí.
  - Defaults vacíos ("") para simplificar JSON.
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
http_method_var: ContextVar[str] = ContextVar("http_method", default="")
http_path_var: ContextVar[str] = ContextVar("http_path", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")
procedure_var: ContextVar[str] = ContextVar("procedure", default="")

_FIELDS: Final[tuple[tuple[str, ContextVar[str]], ...]] = (
    ("request_id", request_id_var),
    ("method", http_method_var),
    ("path", http_path_var),
    ("user_id", user_id_var),
    ("procedure", procedure_var),
)


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = ""
) -> None:
    """Setea el contexto mínimo del request (strings vacíos = no disponible)."""
    request_id_var.set(request_id or "")
    http_method_var.set(method or "")
    http_path_var.set(path or "")


def set_procedure_context(*, procedure: str = "", user_id: str = "") -> None:
    procedure_var.set(procedure or "")
    user_id_var.set(user_id or "")


def get_context_dict() -> dict[str, str]:
    """Devuelve el contexto actual como dict, omitiendo claves vacías."""
    return {key: val for key, var in _FIELDS if (val := var.get())}


def clear_context() -> None:
    """Limpia el contexto al final del request."""
    for _, var in _FIELDS:
        var.set("")
