# apps/backend/erp/crosscutting/exceptions.py
"""
===============================================================================
MÓDULO: Taxonomía de errores de procedimientos (errores tipados)
===============================================================================

Objetivo
--------
Tener excepciones internas coherentes, con:
- error_code estable (taxonomía cerrada)
- error_id para correlación con logs
- message “humana” (sin filtrar secretos)

Taxonomía
---------
  UNAUTHENTICATED     -> no hay Principal válido
  FORBIDDEN           -> falta permiso o rol de sistema protegido
  VALIDATION_ERROR    -> input inválido (mapa campo -> mensajes)
  NOT_FOUND           -> referencia inexistente
  CONFLICT            -> clave de negocio duplicada
  PRECONDITION_FAILED -> regla de negocio / máquina de estados
  DATABASE_ERROR      -> falla de infraestructura (fuera de la taxonomía de negocio)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  ErpError + subclases

Responsabilidades:
  - Estandarizar errores esperados de negocio y errores internos
  - Generar error_id para rastreo

Colaboradores:
  - api/exception_handlers.py (mapea a AppHTTPException / RFC7807)
  - application/registry.py (levanta Unauthenticated/Forbidden/Validation)
  - application/procedures/* (levantan NotFound/Conflict/PreconditionFailed)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Estructura mínima para responder errores de forma consistente."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class ErpError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      ErpError

    Responsabilidades:
      - Base para errores de procedimientos e infraestructura
      - Proveer error_code + error_id + message

    Colaboradores:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "ERP_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class UnauthenticatedError(ErpError):
    """No hay sesión válida (token ausente, vencido o usuario inactivo)."""

    error_code: str = "UNAUTHENTICATED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(ErpError):
    """El Principal no tiene el permiso requerido o la entidad está protegida."""

    error_code: str = "FORBIDDEN"

    def __init__(self, message: str = "Access denied", *, permission: str | None = None):
        super().__init__(message)
        self.permission = permission


class ValidationError(ErpError):
    """Input inválido. field_errors: ruta de campo -> mensajes."""

    error_code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Invalid input",
        field_errors: dict[str, list[str]] | None = None,
    ):
        super().__init__(message)
        self.field_errors = field_errors or {}

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, {field: [message]})


class NotFoundError(ErpError):
    """Entidad referenciada inexistente."""

    error_code: str = "NOT_FOUND"

    def __init__(self, resource: str, identifier: object):
        self.resource = resource
        self.identifier = str(identifier)
        super().__init__(f"{resource} not found")


class ConflictError(ErpError):
    """Violación de unicidad (clave de negocio duplicada)."""

    error_code: str = "CONFLICT"


class PreconditionFailedError(ErpError):
    """Regla de negocio o transición de estado inválida."""

    error_code: str = "PRECONDITION_FAILED"


class DatabaseError(ErpError):
    """Errores de DB (conexión, query, timeout, pool)."""

    error_code: str = "DATABASE_ERROR"


class DuplicateKeyError(DatabaseError):
    """Violación de unique constraint detectada por un repositorio.

    La capa de aplicación la traduce a ConflictError o reintenta
    (asignación de números de secuencia).
    """

    error_code: str = "DUPLICATE_KEY"

    def __init__(self, kind: str, key: str | None):
        self.kind = kind
        self.key = key
        super().__init__(f"Duplicate key for {kind}: {key}")
