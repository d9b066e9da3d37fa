"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/records.py
============================================================
Class: PostgresRecordRepository

Responsibilities:
  - Persistir registros de dominio en una tabla por tipo:
      (id uuid PK, business_key text UNIQUE, data jsonb, created_at, updated_at)
  - Serializar/deserializar con pydantic TypeAdapter (Decimal/UUID/fechas seguros).
  - Traducir UniqueViolation -> DuplicateKeyError (dentro de un savepoint,
    para que la transacción externa siga usable).

Collaborators:
  - psycopg.Connection (la conexión de la transacción en curso)
  - psycopg.sql (identificadores de tabla seguros)
  - crosscutting.logger / crosscutting.metrics
  - crosscutting.exceptions.DatabaseError / DuplicateKeyError

Constraints / Notes:
  - Queries SIEMPRE parametrizadas; los nombres de tabla vienen de RECORD_KINDS.
  - Filtros de igualdad: data @> {...}. Filtros de pertenencia: data->>campo = ANY(...).
  - Repo puro: NO define políticas de negocio.
============================================================
"""

from __future__ import annotations

import time
from functools import lru_cache
from typing import Any, Generic, Iterable, Mapping, Sequence, TypeVar
from uuid import UUID

from psycopg import Connection, errors, sql
from psycopg.types.json import Json
from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

from ....crosscutting.exceptions import DatabaseError, DuplicateKeyError
from ....crosscutting.logger import logger
from ....crosscutting.metrics import observe_db_query_duration
from ....domain.records import Record

T = TypeVar("T", bound=Record)

_MEMBERSHIP_TYPES = (list, tuple, set, frozenset)
_COLUMN_ORDERS = frozenset({"created_at", "updated_at"})


@lru_cache(maxsize=None)
def _adapter(record_cls: type) -> TypeAdapter:
    return TypeAdapter(record_cls)


class PostgresRecordRepository(Generic[T]):
    """Repositorio PostgreSQL genérico (una tabla por tipo de registro)."""

    def __init__(self, conn: Connection, kind: str, record_cls: type[T]):
        self._conn = conn
        self.kind = kind
        self._record_cls = record_cls
        self._table = sql.Identifier(kind)

    # ------------------------------------------------------------
    # Helpers internos (errores/logging/métricas consistentes)
    # ------------------------------------------------------------
    def _execute(self, query: sql.Composable, params: Iterable[object], *, op: str):
        start = time.perf_counter()
        try:
            return self._conn.execute(query, tuple(params))
        except errors.UniqueViolation:
            raise
        except Exception as exc:
            logger.exception(
                "PostgresRecordRepository: query failed",
                extra={"kind": self.kind, "op": op, "error": str(exc)},
            )
            raise DatabaseError(f"Failed to {op} {self.kind}: {exc}") from exc
        finally:
            observe_db_query_duration(op, time.perf_counter() - start)

    def _load(self, data: dict) -> T:
        return _adapter(self._record_cls).validate_python(data)

    def _dump(self, record: T) -> dict:
        return _adapter(self._record_cls).dump_python(record, mode="json")

    def _where(
        self,
        filters: Mapping[str, Any] | None,
        search: str | None = None,
        search_fields: Sequence[str] = (),
    ) -> tuple[sql.Composable, list[object]]:
        conditions: list[sql.Composable] = []
        params: list[object] = []

        equality: dict[str, Any] = {}
        for name, value in (filters or {}).items():
            if isinstance(value, _MEMBERSHIP_TYPES):
                conditions.append(sql.SQL("data->>%s = ANY(%s)"))
                params.extend([name, [str(to_jsonable_python(v)) for v in value]])
            else:
                equality[name] = value
        if equality:
            conditions.append(sql.SQL("data @> %s"))
            params.append(Json(to_jsonable_python(equality)))

        needle = (search or "").strip()
        if needle and search_fields:
            ors = [sql.SQL("data->>%s ILIKE %s") for _ in search_fields]
            conditions.append(sql.SQL("(") + sql.SQL(" OR ").join(ors) + sql.SQL(")"))
            for field_name in search_fields:
                params.extend([field_name, f"%{needle}%"])

        if not conditions:
            return sql.SQL(""), params
        return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions), params

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def get(self, record_id: UUID) -> T | None:
        row = self._execute(
            sql.SQL("SELECT data FROM {} WHERE id = %s").format(self._table),
            [record_id],
            op="get",
        ).fetchone()
        return self._load(row[0]) if row else None

    def find_one(self, **filters: Any) -> T | None:
        where, params = self._where(filters)
        row = self._execute(
            sql.SQL("SELECT data FROM {}{} LIMIT 1").format(self._table, where),
            params,
            op="find",
        ).fetchone()
        return self._load(row[0]) if row else None

    def list(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        search: str | None = None,
        search_fields: Sequence[str] = (),
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[T]:
        where, params = self._where(filters, search, search_fields)
        direction = sql.SQL("DESC" if descending else "ASC")
        if order_by in _COLUMN_ORDERS:
            order = sql.SQL("{} {}").format(sql.Identifier(order_by), direction)
        else:
            order = sql.SQL("data->>%s {}").format(direction)
            params.append(order_by)

        query = sql.SQL("SELECT data FROM {}{} ORDER BY {}, id").format(
            self._table, where, order
        )
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        if offset > 0:
            query += sql.SQL(" OFFSET %s")
            params.append(offset)

        rows = self._execute(query, params, op="list").fetchall()
        return [self._load(row[0]) for row in rows]

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        where, params = self._where(filters)
        row = self._execute(
            sql.SQL("SELECT count(*) FROM {}{}").format(self._table, where),
            params,
            op="count",
        ).fetchone()
        return int(row[0]) if row else 0

    def max_sequence(self, prefix: str) -> int | None:
        pattern = f"^{prefix}-([0-9]+)$"
        row = self._execute(
            sql.SQL(
                "SELECT max(substring(business_key from %s)::bigint) "
                "FROM {} WHERE business_key ~ %s"
            ).format(self._table),
            [pattern, pattern],
            op="max_sequence",
        ).fetchone()
        return int(row[0]) if row and row[0] is not None else None

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
    def add(self, record: T) -> T:
        self._write(
            sql.SQL(
                "INSERT INTO {} (id, business_key, data, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, %s)"
            ).format(self._table),
            [
                record.id,
                record.business_key(),
                Json(self._dump(record)),
                record.created_at,
                record.updated_at,
            ],
            record,
            op="insert",
        )
        return record

    def update(self, record: T) -> T:
        self._write(
            sql.SQL(
                "UPDATE {} SET business_key = %s, data = %s, updated_at = %s "
                "WHERE id = %s"
            ).format(self._table),
            [
                record.business_key(),
                Json(self._dump(record)),
                record.updated_at,
                record.id,
            ],
            record,
            op="update",
        )
        return record

    def delete(self, record_id: UUID) -> None:
        self._execute(
            sql.SQL("DELETE FROM {} WHERE id = %s").format(self._table),
            [record_id],
            op="delete",
        )

    def _write(
        self, query: sql.Composable, params: list[object], record: T, *, op: str
    ) -> None:
        # Savepoint: una colisión no invalida la transacción externa.
        try:
            with self._conn.transaction():
                self._execute(query, params, op=op)
        except errors.UniqueViolation as exc:
            raise DuplicateKeyError(self.kind, record.business_key()) from exc
