"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/store.py
============================================================
Class: PostgresStore / PostgresUnitOfWork

Responsibilities:
  - Abrir UNA conexión del pool por transacción.
  - Exponer todos los repositorios sobre esa conexión (mismo commit).
  - Commit al salir sin error; rollback ante cualquier excepción.

Collaborators:
  - infrastructure.db.pool.get_pool
  - PostgresRecordRepository / PostgresAuditLogRepository /
    PostgresNotificationRepository
============================================================
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg
from psycopg_pool import ConnectionPool, PoolTimeout

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.repositories import RECORD_KINDS
from .audit_log import PostgresAuditLogRepository
from .notifications import PostgresNotificationRepository
from .records import PostgresRecordRepository


class PostgresUnitOfWork:
    def __init__(self, conn: psycopg.Connection):
        for kind, record_cls in RECORD_KINDS.items():
            setattr(self, kind, PostgresRecordRepository(conn, kind, record_cls))
        self.audit_log = PostgresAuditLogRepository(conn)
        self.notifications = PostgresNotificationRepository(conn)


class PostgresStore:
    def __init__(self, pool: ConnectionPool | None = None):
        # Pool inyectable: tests pueden pasar su pool; prod usa el pool global.
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    @contextmanager
    def transaction(self) -> Iterator[PostgresUnitOfWork]:
        try:
            with self._get_pool().connection() as conn:
                with conn.transaction():
                    yield PostgresUnitOfWork(conn)
        except (psycopg.Error, PoolTimeout) as exc:
            logger.exception(
                "PostgresStore: transaction failed", extra={"error": str(exc)}
            )
            raise DatabaseError(f"Transaction failed: {exc}") from exc
