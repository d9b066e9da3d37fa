"""
===============================================================================
TARJETA CRC — application/procedures/manufacturing.py
===============================================================================

Procedimientos (permisos inventory:*):
  - get_work_orders / get_work_order / create_work_order /
    update_work_order_status
  - get_boms / get_bom / create_bom
  - get_qc_inspections / create_qc_inspection

Reglas de negocio:
  R1) Una orden de trabajo solo avanza (planned -> released -> in_progress
      -> completed -> closed); nunca retrocede.
  R2) in_progress fija actual_start_date; completed fija actual_end_date.
  R3) La BOM necesita componentes existentes y distintos del ensamble.
  R4) Inspección: pasadas + falladas <= inspeccionadas; el estado se deriva.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import Field, model_validator

from ...crosscutting.exceptions import PreconditionFailedError
from ...domain import sequences
from ...domain.inventory import Item
from ...domain.manufacturing import (
    BillOfMaterial,
    BomComponent,
    Priority,
    QCInspection,
    QCStatus,
    WorkOrder,
    WorkOrderStatus,
    can_advance,
)
from ...domain.permissions import Permission
from ..audit import record_audit
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import allocate_and_insert
from ._common import IdInput, Input, ListInput, get_or_404, page_limit, present, touch

router = ProcedureRouter("manufacturing")


class WorkOrderListInput(ListInput):
    status: WorkOrderStatus | None = None
    priority: Priority | None = None


class CreateWorkOrderInput(Input):
    bom_id: UUID
    planned_quantity: Decimal = Field(gt=0)
    planned_start_date: date | None = None
    planned_end_date: date | None = None
    priority: Priority = Priority.NORMAL
    memo: str | None = Field(default=None, max_length=1000)


class WorkOrderStatusInput(Input):
    id: UUID
    status: WorkOrderStatus
    completed_quantity: Decimal | None = Field(default=None, ge=0)
    scrapped_quantity: Decimal | None = Field(default=None, ge=0)


class BomListInput(ListInput):
    is_active: bool | None = None


class ComponentInput(Input):
    item_id: UUID
    quantity: Decimal = Field(gt=0)


class CreateBomInput(Input):
    name: str = Field(min_length=1, max_length=200)
    assembly_item_id: UUID
    revision: str = Field(default="1.0", max_length=20)
    effective_date: date | None = None
    components: list[ComponentInput] = Field(min_length=1)


class QCListInput(ListInput):
    status: QCStatus | None = None
    work_order_id: UUID | None = None


class CreateQCInspectionInput(Input):
    work_order_id: UUID | None = None
    item_id: UUID
    inspection_date: date | None = None
    quantity_inspected: Decimal = Field(gt=0)
    quantity_passed: Decimal = Field(default=Decimal("0"), ge=0)
    quantity_failed: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def counts_fit(self):
        if self.quantity_passed + self.quantity_failed > self.quantity_inspected:
            raise ValueError("Passed and failed quantities exceed quantity inspected")
        return self


@dataclass(frozen=True)
class WorkOrderDetail:
    work_order: WorkOrder
    bom: BillOfMaterial | None
    inspections: list[QCInspection]


@dataclass(frozen=True)
class BomDetail:
    bom: BillOfMaterial
    assembly_item: Item | None
    component_items: list[Item]


def inspection_status(inspected: Decimal, passed: Decimal, failed: Decimal) -> QCStatus:
    if passed == 0 and failed == 0:
        return QCStatus.PENDING
    if passed + failed < inspected:
        return QCStatus.IN_PROGRESS
    return QCStatus.FAILED if failed > 0 else QCStatus.PASSED


# ---------------------------------------------------------------------------
# Órdenes de trabajo
# ---------------------------------------------------------------------------


@router.query("get_work_orders", input=WorkOrderListInput, permission=Permission.INVENTORY_VIEW)
def get_work_orders(ctx: ProcedureContext, data: WorkOrderListInput) -> list[WorkOrder]:
    with ctx.store.transaction() as uow:
        return uow.work_orders.list(
            filters=present(status=data.status, priority=data.priority),
            search=data.search,
            search_fields=("work_order_number", "memo"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_work_order", input=IdInput, permission=Permission.INVENTORY_VIEW)
def get_work_order(ctx: ProcedureContext, data: IdInput) -> WorkOrderDetail:
    with ctx.store.transaction() as uow:
        work_order = get_or_404(uow.work_orders, data.id, "Work order")
        return WorkOrderDetail(
            work_order=work_order,
            bom=uow.boms.get(work_order.bom_id),
            inspections=uow.qc_inspections.list(filters={"work_order_id": work_order.id}),
        )


@router.mutation("create_work_order", input=CreateWorkOrderInput, permission=Permission.INVENTORY_CREATE)
def create_work_order(ctx: ProcedureContext, data: CreateWorkOrderInput) -> WorkOrder:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        bom = get_or_404(uow.boms, data.bom_id, "Bill of material")
        if not bom.is_active:
            raise PreconditionFailedError("Cannot create a work order from an inactive BOM")
        work_order = allocate_and_insert(
            uow.work_orders,
            sequences.WORK_ORDER,
            lambda number: WorkOrder(
                work_order_number=number,
                created_at=now,
                updated_at=now,
                **data.model_dump(),
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "WorkOrder", work_order.id, new=work_order, at=now)
        return work_order


@router.mutation("update_work_order_status", input=WorkOrderStatusInput, permission=Permission.INVENTORY_EDIT)
def update_work_order_status(ctx: ProcedureContext, data: WorkOrderStatusInput) -> WorkOrder:
    with ctx.store.transaction() as uow:
        work_order = get_or_404(uow.work_orders, data.id, "Work order")
        if not can_advance(work_order.status, data.status):
            raise PreconditionFailedError(
                f"Cannot move work order from {work_order.status.value} to {data.status.value}"
            )

        changes: dict = {"status": data.status}
        today = ctx.today()
        if data.status == WorkOrderStatus.IN_PROGRESS and work_order.actual_start_date is None:
            changes["actual_start_date"] = today
        if data.status == WorkOrderStatus.COMPLETED:
            changes["actual_end_date"] = today
            changes["actual_start_date"] = work_order.actual_start_date or today
            changes["completed_quantity"] = (
                data.completed_quantity
                if data.completed_quantity is not None
                else work_order.planned_quantity
            )
        elif data.completed_quantity is not None:
            changes["completed_quantity"] = data.completed_quantity
        if data.scrapped_quantity is not None:
            changes["scrapped_quantity"] = data.scrapped_quantity

        updated = uow.work_orders.update(touch(ctx, work_order, **changes))
        record_audit(uow, ctx.actor, "update", "WorkOrder", work_order.id, old=work_order, new=updated)
        return updated


# ---------------------------------------------------------------------------
# Listas de materiales
# ---------------------------------------------------------------------------


@router.query("get_boms", input=BomListInput, permission=Permission.INVENTORY_VIEW)
def get_boms(ctx: ProcedureContext, data: BomListInput) -> list[BillOfMaterial]:
    with ctx.store.transaction() as uow:
        return uow.boms.list(
            filters=present(is_active=data.is_active),
            search=data.search,
            search_fields=("bom_number", "name"),
            order_by="bom_number",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_bom", input=IdInput, permission=Permission.INVENTORY_VIEW)
def get_bom(ctx: ProcedureContext, data: IdInput) -> BomDetail:
    with ctx.store.transaction() as uow:
        bom = get_or_404(uow.boms, data.id, "Bill of material")
        components = [uow.items.get(c.item_id) for c in bom.components]
        return BomDetail(
            bom=bom,
            assembly_item=uow.items.get(bom.assembly_item_id),
            component_items=[item for item in components if item is not None],
        )


@router.mutation("create_bom", input=CreateBomInput, permission=Permission.INVENTORY_CREATE)
def create_bom(ctx: ProcedureContext, data: CreateBomInput) -> BillOfMaterial:
    now = ctx.now()
    components = tuple(
        BomComponent(item_id=c.item_id, quantity=c.quantity, line_number=index)
        for index, c in enumerate(data.components, start=1)
    )
    with ctx.store.transaction() as uow:
        get_or_404(uow.items, data.assembly_item_id, "Assembly item")
        for component in components:
            if component.item_id == data.assembly_item_id:
                raise PreconditionFailedError("An assembly cannot be its own component")
            get_or_404(uow.items, component.item_id, "Component item")

        bom = allocate_and_insert(
            uow.boms,
            sequences.BILL_OF_MATERIAL,
            lambda number: BillOfMaterial(
                bom_number=number,
                name=data.name,
                assembly_item_id=data.assembly_item_id,
                revision=data.revision,
                effective_date=data.effective_date or ctx.today(),
                components=components,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "BillOfMaterial", bom.id, new=bom, at=now)
        return bom


# ---------------------------------------------------------------------------
# Control de calidad
# ---------------------------------------------------------------------------


@router.query("get_qc_inspections", input=QCListInput, permission=Permission.INVENTORY_VIEW)
def get_qc_inspections(ctx: ProcedureContext, data: QCListInput) -> list[QCInspection]:
    with ctx.store.transaction() as uow:
        return uow.qc_inspections.list(
            filters=present(status=data.status, work_order_id=data.work_order_id),
            order_by="inspection_date",
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.mutation("create_qc_inspection", input=CreateQCInspectionInput, permission=Permission.INVENTORY_CREATE)
def create_qc_inspection(ctx: ProcedureContext, data: CreateQCInspectionInput) -> QCInspection:
    now = ctx.now()
    status = inspection_status(
        data.quantity_inspected, data.quantity_passed, data.quantity_failed
    )
    with ctx.store.transaction() as uow:
        get_or_404(uow.items, data.item_id, "Item")
        if data.work_order_id is not None:
            get_or_404(uow.work_orders, data.work_order_id, "Work order")
        inspection = allocate_and_insert(
            uow.qc_inspections,
            sequences.QC_INSPECTION,
            lambda number: QCInspection(
                inspection_number=number,
                work_order_id=data.work_order_id,
                item_id=data.item_id,
                inspection_date=data.inspection_date or ctx.today(),
                quantity_inspected=data.quantity_inspected,
                quantity_passed=data.quantity_passed,
                quantity_failed=data.quantity_failed,
                status=status,
                inspector_id=ctx.actor.user_id,
                notes=data.notes,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "QCInspection", inspection.id, new=inspection, at=now)
        return inspection
