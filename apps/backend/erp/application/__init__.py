"""Capa de aplicación: registry de procedimientos, handlers y side effects."""

from .audit import record_audit
from .notifications import emit_notification
from .registry import (
    EmptyInput,
    Procedure,
    ProcedureContext,
    ProcedureKind,
    ProcedureRegistry,
    ProcedureRouter,
)
from .sequences import allocate_and_insert, insert_with_number

__all__ = [
    "EmptyInput",
    "Procedure",
    "ProcedureContext",
    "ProcedureKind",
    "ProcedureRegistry",
    "ProcedureRouter",
    "record_audit",
    "emit_notification",
    "allocate_and_insert",
    "insert_with_number",
]
