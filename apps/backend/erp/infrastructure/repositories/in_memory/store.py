# =============================================================================
# FILE: infrastructure/repositories/in_memory/store.py
# =============================================================================
"""
In-Memory Store (UnitOfWork factory) for testing and local development.

Transacciones:
  - Serializadas con un RLock (una a la vez por proceso).
  - Ante cualquier excepción se restaura el snapshot tomado al inicio,
    incluyendo auditoría y notificaciones.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from ....domain.repositories import RECORD_KINDS
from .audit_log import InMemoryAuditLogRepository
from .notifications import InMemoryNotificationRepository
from .records import InMemoryRecordRepository


class InMemoryUnitOfWork:
    """Repositorios compartidos por todas las transacciones del store."""

    def __init__(self) -> None:
        for kind in RECORD_KINDS:
            setattr(self, kind, InMemoryRecordRepository(kind))
        self.audit_log = InMemoryAuditLogRepository()
        self.notifications = InMemoryNotificationRepository()

    def _repositories(self):
        yield from (getattr(self, kind) for kind in RECORD_KINDS)
        yield self.audit_log
        yield self.notifications


class InMemoryStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.uow = InMemoryUnitOfWork()

    @contextmanager
    def transaction(self) -> Iterator[InMemoryUnitOfWork]:
        with self._lock:
            repositories = list(self.uow._repositories())
            saved = [repo.snapshot() for repo in repositories]
            try:
                yield self.uow
            except BaseException:
                for repo, state in zip(repositories, saved):
                    repo.restore(state)
                raise
