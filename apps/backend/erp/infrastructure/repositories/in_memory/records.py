# =============================================================================
# FILE: infrastructure/repositories/in_memory/records.py
# =============================================================================
"""
In-Memory Record Repository (generic, one instance per record kind).

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar
from uuid import UUID

from ....crosscutting.exceptions import DuplicateKeyError
from ....domain.records import Record

T = TypeVar("T", bound=Record)

_MEMBERSHIP_TYPES = (list, tuple, set, frozenset)


def _matches(record: Record, filters: Mapping[str, Any]) -> bool:
    for name, expected in filters.items():
        actual = getattr(record, name, None)
        if isinstance(expected, _MEMBERSHIP_TYPES):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _sort_key(order_by: str):
    def key(record: Record):
        value = getattr(record, order_by, None)
        return (value is None, value if value is not None else 0)

    return key


class InMemoryRecordRepository(Generic[T]):
    """
    In-memory implementation of RecordRepository.

    Uniqueness is enforced on Record.business_key(), mirroring the
    UNIQUE constraint of the Postgres tables.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._rows: Dict[UUID, T] = {}

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def get(self, record_id: UUID) -> Optional[T]:
        return self._rows.get(record_id)

    def find_one(self, **filters: Any) -> Optional[T]:
        for record in self._rows.values():
            if _matches(record, filters):
                return record
        return None

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
    ) -> List[T]:
        results = [r for r in self._rows.values() if _matches(r, filters or {})]

        needle = (search or "").strip().lower()
        if needle and search_fields:
            results = [
                r
                for r in results
                if any(
                    needle in str(getattr(r, f, "") or "").lower()
                    for f in search_fields
                )
            ]

        results.sort(key=_sort_key(order_by), reverse=descending)
        offset = max(0, offset)
        if limit is None:
            return results[offset:]
        return results[offset : offset + limit]

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        return sum(1 for r in self._rows.values() if _matches(r, filters or {}))

    def max_sequence(self, prefix: str) -> Optional[int]:
        marker = f"{prefix}-"
        numbers = []
        for record in self._rows.values():
            key = record.business_key() or ""
            suffix = key[len(marker) :] if key.startswith(marker) else ""
            if suffix.isdigit():
                numbers.append(int(suffix))
        return max(numbers) if numbers else None

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
    def add(self, record: T) -> T:
        self._ensure_unique(record)
        self._rows[record.id] = record
        return record

    def update(self, record: T) -> T:
        self._ensure_unique(record)
        self._rows[record.id] = record
        return record

    def delete(self, record_id: UUID) -> None:
        self._rows.pop(record_id, None)

    def _ensure_unique(self, record: T) -> None:
        key = record.business_key()
        if key is None:
            return
        for other in self._rows.values():
            if other.id != record.id and other.business_key() == key:
                raise DuplicateKeyError(self.kind, key)

    # ------------------------------------------------------------
    # Snapshot (rollback del store)
    # ------------------------------------------------------------
    def snapshot(self) -> Dict[UUID, T]:
        # Los registros son inmutables: copiar el dict alcanza.
        return dict(self._rows)

    def restore(self, rows: Dict[UUID, T]) -> None:
        self._rows = rows
