"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/audit_log.py
============================================================
Class: PostgresAuditLogRepository

Responsibilities:
  - Insertar entradas de auditoría (append-only) en audit_logs.
  - Listar/contar con filtros (usuario, entidad, acción, rango de fechas).
  - Orden determinístico: created_at DESC, id DESC.

Collaborators:
  - psycopg.Connection (transacción en curso: mismo commit que el negocio)
  - domain.audit.AuditLogEntry
  - crosscutting.exceptions.DatabaseError

Constraints / Notes:
  - Si el INSERT falla se propaga DatabaseError: la transacción completa
    se revierte (no hay auditoría "best-effort").
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable
from uuid import UUID

from psycopg import Connection
from psycopg.types.json import Json

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.audit import AuditLogEntry


def _row_to_entry(row: tuple) -> AuditLogEntry:
    return AuditLogEntry(
        id=row[0],
        user_id=row[1],
        action=row[2],
        entity_type=row[3],
        entity_id=row[4],
        old_value=row[5],
        new_value=row[6],
        created_at=row[7],
    )


class PostgresAuditLogRepository:
    """Repositorio PostgreSQL para auditoría (audit_logs)."""

    def __init__(self, conn: Connection):
        self._conn = conn

    def _fetchall(
        self, *, query: str, params: Iterable[object], error_message: str
    ) -> list[tuple]:
        try:
            return self._conn.execute(query, tuple(params)).fetchall()
        except Exception as exc:
            logger.exception(error_message, extra={"error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    def append(self, entry: AuditLogEntry) -> None:
        try:
            self._conn.execute(
                """
                INSERT INTO audit_logs
                    (id, user_id, action, entity_type, entity_id,
                     old_value, new_value, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    entry.id,
                    entry.user_id,
                    entry.action,
                    entry.entity_type,
                    entry.entity_id,
                    Json(entry.old_value) if entry.old_value is not None else None,
                    Json(entry.new_value) if entry.new_value is not None else None,
                    entry.created_at,
                ),
            )
        except Exception as exc:
            logger.exception(
                "PostgresAuditLogRepository: Failed to append audit entry",
                extra={
                    "entity_type": entry.entity_type,
                    "action": entry.action,
                    "error": str(exc),
                },
            )
            raise DatabaseError(f"Failed to append audit entry: {exc}") from exc

    @staticmethod
    def _conditions(
        *,
        user_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> tuple[str, list[object]]:
        conditions: list[str] = []
        params: list[object] = []
        if user_id is not None:
            conditions.append("user_id = %s")
            params.append(user_id)
        if entity_type:
            conditions.append("entity_type = %s")
            params.append(entity_type)
        if entity_id:
            conditions.append("entity_id = %s")
            params.append(entity_id)
        if action:
            conditions.append("action = %s")
            params.append(action)
        if date_from is not None:
            conditions.append("created_at >= %s")
            params.append(date_from)
        if date_to is not None:
            conditions.append("created_at <= %s")
            params.append(date_to)
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    def list_entries(
        self, *, limit: int = 50, offset: int = 0, **filters
    ) -> list[AuditLogEntry]:
        if limit <= 0:
            return []
        where, params = self._conditions(**filters)
        rows = self._fetchall(
            query=(
                "SELECT id, user_id, action, entity_type, entity_id, "
                "old_value, new_value, created_at FROM audit_logs"
                f"{where} ORDER BY created_at DESC, id DESC LIMIT %s OFFSET %s"
            ),
            params=[*params, limit, max(0, offset)],
            error_message="PostgresAuditLogRepository: Failed to list audit entries",
        )
        return [_row_to_entry(row) for row in rows]

    def count_entries(self, **filters) -> int:
        where, params = self._conditions(**filters)
        rows = self._fetchall(
            query=f"SELECT count(*) FROM audit_logs{where}",
            params=params,
            error_message="PostgresAuditLogRepository: Failed to count audit entries",
        )
        return int(rows[0][0]) if rows else 0
