"""
Postgres Repository Implementations (raw SQL over psycopg 3).

Una transacción = una conexión del pool; todos los repositorios del
UnitOfWork comparten esa conexión.
"""

from .audit_log import PostgresAuditLogRepository
from .notifications import PostgresNotificationRepository
from .records import PostgresRecordRepository
from .store import PostgresStore, PostgresUnitOfWork

__all__ = [
    "PostgresRecordRepository",
    "PostgresAuditLogRepository",
    "PostgresNotificationRepository",
    "PostgresUnitOfWork",
    "PostgresStore",
]
