"""
In-Memory Repository Implementations.

For testing and local development. NOT FOR PRODUCTION.
Data is lost on process restart.
"""

from .audit_log import InMemoryAuditLogRepository
from .notifications import InMemoryNotificationRepository
from .records import InMemoryRecordRepository
from .store import InMemoryStore, InMemoryUnitOfWork

__all__ = [
    "InMemoryRecordRepository",
    "InMemoryAuditLogRepository",
    "InMemoryNotificationRepository",
    "InMemoryUnitOfWork",
    "InMemoryStore",
]
