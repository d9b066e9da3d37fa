"""
===============================================================================
TARJETA CRC — domain/manufacturing.py
===============================================================================

Módulo:
    Manufactura: listas de materiales, órdenes de trabajo e inspecciones QC

Responsabilidades:
    - Definir BillOfMaterial (componentes embebidos), WorkOrder y QCInspection.
    - Declarar el avance permitido de una orden de trabajo (solo hacia adelante).

Colaboradores:
    - application/procedures/manufacturing.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from .records import Record


class WorkOrderStatus(str, Enum):
    PLANNED = "planned"
    RELEASED = "released"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"


_WORK_ORDER_SEQUENCE = tuple(WorkOrderStatus)


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class QCStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True, kw_only=True)
class BomComponent:
    item_id: UUID
    quantity: Decimal
    line_number: int


@dataclass(frozen=True, kw_only=True)
class BillOfMaterial(Record):
    bom_number: str
    name: str
    assembly_item_id: UUID
    revision: str = "1.0"
    effective_date: date | None = None
    components: tuple[BomComponent, ...] = ()
    is_active: bool = True

    def business_key(self) -> str | None:
        return self.bom_number


@dataclass(frozen=True, kw_only=True)
class WorkOrder(Record):
    work_order_number: str
    bom_id: UUID
    planned_quantity: Decimal
    completed_quantity: Decimal = Decimal("0")
    scrapped_quantity: Decimal = Decimal("0")
    planned_start_date: date | None = None
    planned_end_date: date | None = None
    actual_start_date: date | None = None
    actual_end_date: date | None = None
    priority: Priority = Priority.NORMAL
    status: WorkOrderStatus = WorkOrderStatus.PLANNED
    memo: str | None = None

    def business_key(self) -> str | None:
        return self.work_order_number


@dataclass(frozen=True, kw_only=True)
class QCInspection(Record):
    inspection_number: str
    work_order_id: UUID | None = None
    item_id: UUID
    inspection_date: date
    quantity_inspected: Decimal
    quantity_passed: Decimal = Decimal("0")
    quantity_failed: Decimal = Decimal("0")
    status: QCStatus = QCStatus.PENDING
    inspector_id: UUID | None = None
    notes: str | None = None

    def business_key(self) -> str | None:
        return self.inspection_number


def can_advance(current: WorkOrderStatus, target: WorkOrderStatus) -> bool:
    return _WORK_ORDER_SEQUENCE.index(target) > _WORK_ORDER_SEQUENCE.index(current)
