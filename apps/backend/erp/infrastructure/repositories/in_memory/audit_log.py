# =============================================================================
# FILE: infrastructure/repositories/in_memory/audit_log.py
# =============================================================================
"""
In-Memory Audit Log Repository (append-only).

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ....domain.audit import AuditLogEntry


class InMemoryAuditLogRepository:
    def __init__(self) -> None:
        self._entries: List[AuditLogEntry] = []

    def append(self, entry: AuditLogEntry) -> None:
        self._entries.append(entry)

    def _filtered(
        self,
        *,
        user_id: Optional[UUID] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[AuditLogEntry]:
        results = list(self._entries)
        if user_id is not None:
            results = [e for e in results if e.user_id == user_id]
        if entity_type:
            results = [e for e in results if e.entity_type == entity_type]
        if entity_id:
            results = [e for e in results if e.entity_id == entity_id]
        if action:
            results = [e for e in results if e.action == action]
        if date_from is not None:
            results = [e for e in results if e.created_at >= date_from]
        if date_to is not None:
            results = [e for e in results if e.created_at <= date_to]
        return results

    def list_entries(
        self, *, limit: int = 50, offset: int = 0, **filters
    ) -> List[AuditLogEntry]:
        results = self._filtered(**filters)
        # Orden estable: created_at DESC, luego orden de inserción inverso.
        results = list(reversed(results))
        results.sort(key=lambda e: e.created_at, reverse=True)
        return results[max(0, offset) : max(0, offset) + limit]

    def count_entries(self, **filters) -> int:
        return len(self._filtered(**filters))

    def snapshot(self) -> List[AuditLogEntry]:
        return list(self._entries)

    def restore(self, entries: List[AuditLogEntry]) -> None:
        self._entries = entries
