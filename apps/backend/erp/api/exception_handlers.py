"""
===============================================================================
TARJETA CRC — erp/api/exception_handlers.py (Manejo Centralizado de Excepciones)
===============================================================================

Responsabilidades:
  - Traducir la taxonomía ErpError a respuestas HTTP RFC7807.
  - Centralizar logging de errores con request_id + error_id.
  - Evitar filtrar detalles internos en errores no controlados.

Mapa de estados (vía factories de crosscutting.error_responses):
  UNAUTHENTICATED 401 | FORBIDDEN 403 | VALIDATION_ERROR 422 | NOT_FOUND 404
  CONFLICT 409 | PRECONDITION_FAILED 412 | DATABASE_ERROR 503 | resto 500

Colaboradores:
  - crosscutting.error_responses: factories + app_exception_handler
  - crosscutting.exceptions: ErpError y derivadas
  - crosscutting.config.get_settings (para decidir nivel de detalle)
===============================================================================
"""

from __future__ import annotations

from typing import Callable

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
    conflict,
    database_error,
    forbidden,
    internal_error,
    not_found,
    precondition_failed,
    unauthenticated,
    validation_error,
)
from ..crosscutting.exceptions import DatabaseError, ErpError, ValidationError
from ..crosscutting.logger import logger

_FACTORY_BY_CODE: dict[str, Callable[[str], AppHTTPException]] = {
    "UNAUTHENTICATED": unauthenticated,
    "FORBIDDEN": forbidden,
    "NOT_FOUND": not_found,
    "CONFLICT": conflict,
    "PRECONDITION_FAILED": precondition_failed,
}


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def field_error_list(field_errors: dict[str, list[str]]) -> list[dict[str, str]]:
    """{"campo": ["msg", ...]} -> [{"field": "campo", "msg": "msg"}, ...]"""
    return [
        {"field": field, "msg": message}
        for field, messages in field_errors.items()
        for message in messages
    ]


def to_http_exception(exc: ErpError) -> AppHTTPException | None:
    """ErpError -> AppHTTPException; None si el código no tiene mapeo (500)."""
    if isinstance(exc, ValidationError):
        return validation_error(exc.message, field_error_list(exc.field_errors))
    factory = _FACTORY_BY_CODE.get(exc.error_code)
    if factory is None:
        return None
    app_exc = factory(exc.message)
    if app_exc.status_code == 401:
        app_exc.headers = {"WWW-Authenticate": "Bearer"}
    return app_exc


async def erp_error_handler(request: Request, exc: ErpError) -> JSONResponse:
    app_exc = to_http_exception(exc)
    if app_exc is None:
        return await unhandled_exception_handler(request, exc)
    return await app_exception_handler(request, app_exc)


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    request_id = _request_id_from(request)

    logger.error(
        "Error de base de datos",
        extra={
            "code": ErrorCode.DATABASE_ERROR.value,
            "error_id": exc.error_id,
            "request_id": request_id,
        },
    )

    # El mensaje crudo del driver nunca sale al cliente.
    app_exc = database_error()
    app_exc.errors = [{"error_id": exc.error_id}]
    return await app_exception_handler(request, app_exc)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Body/query inválidos en endpoints HTTP propios (ej: /auth/login)."""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "msg": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return await app_exception_handler(request, validation_error("Invalid input", errors))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler para excepciones no tipadas.

    - Log completo (stacktrace).
    - Respuesta genérica (evita filtrar internos).
    """
    request_id = _request_id_from(request)
    settings = get_settings()

    logger.error(
        "Excepción no controlada",
        exc_info=exc,
        extra={"request_id": request_id},
    )

    detail = "An unexpected error occurred"
    if settings.app_env.strip().lower() == "development":
        detail = f"{detail}: {type(exc).__name__}"

    return await app_exception_handler(request, internal_error(detail))


def register_exception_handlers(app) -> None:
    """
    Registra handlers en la app FastAPI.

    Importante:
      - DatabaseError antes que ErpError (más específico).
      - Exception genérica se registra al final como fallback.
    """
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(ErpError, erp_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["field_error_list", "register_exception_handlers", "to_http_exception"]
