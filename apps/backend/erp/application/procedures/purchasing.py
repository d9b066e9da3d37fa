"""
===============================================================================
TARJETA CRC — application/procedures/purchasing.py
===============================================================================

Procedimientos (permisos purchasing:*):
  - Proveedores:       get_vendors / get_vendor / create_vendor /
                       update_vendor / delete_vendor
  - Órdenes de compra: get_purchase_orders / get_purchase_order /
                       create_purchase_order / update_purchase_order /
                       approve / send / receive / close / cancel
  - Facturas:          get_vendor_bills / create_vendor_bill

Reglas de negocio:
  R1) Un proveedor con órdenes o facturas NO se borra.
  R2) Las líneas solo se editan en draft / pending_approval.
  R3) Transiciones según domain.purchasing (ver máquina de estados).
  R4) Recepción: crea IR-N, acumula quantity_received y, si hay depósito,
      ingresa stock (movimiento IT-N de tipo receipt).
  R5) Cancelar falla si existe alguna recepción.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import Field, field_validator

from ...crosscutting.exceptions import PreconditionFailedError, ValidationError
from ...domain import sequences
from ...domain.inventory import InventoryTransaction, StockLevel, TransactionType
from ...domain.money import format_money, to_money
from ...domain.notifications import NotificationType
from ...domain.parties import Vendor, default_display_name
from ...domain.permissions import Permission
from ...domain.purchasing import (
    APPROVABLE_STATUSES,
    CANCELLABLE_STATUSES,
    EDITABLE_STATUSES,
    RECEIVABLE_STATUSES,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    Receipt,
    ReceiptLine,
    VendorBill,
    compute_po_totals,
    price_po_line,
)
from ...domain.repositories import UnitOfWork
from ...domain.sales import DEFAULT_PAYMENT_TERMS, InvoiceStatus, due_date_for
from ..audit import record_audit
from ..notifications import emit_notification
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import allocate_and_insert, insert_with_number
from ._common import (
    AddressInput,
    Email,
    IdInput,
    Input,
    ListInput,
    UpdateInput,
    changes_of,
    get_or_404,
    page_limit,
    present,
    touch,
    update_unique,
)

router = ProcedureRouter("purchasing")


class VendorListInput(ListInput):
    is_active: bool | None = None


class CreateVendorInput(Input):
    vendor_number: str | None = Field(default=None, max_length=50)
    company_name: str = Field(min_length=1, max_length=200)
    display_name: str | None = Field(default=None, max_length=200)
    email: Email | None = None
    phone: str | None = Field(default=None, max_length=50)
    website: str | None = Field(default=None, max_length=200)
    address: AddressInput | None = None
    payment_terms: str = Field(default=DEFAULT_PAYMENT_TERMS, max_length=50)
    tax_id: str | None = Field(default=None, max_length=50)
    bank_name: str | None = Field(default=None, max_length=100)
    bank_account: str | None = Field(default=None, max_length=100)
    notes: str | None = None


class UpdateVendorInput(UpdateInput):
    clearable = frozenset(
        {
            "email",
            "phone",
            "website",
            "address",
            "tax_id",
            "bank_name",
            "bank_account",
            "notes",
        }
    )

    id: UUID
    company_name: str | None = Field(default=None, min_length=1, max_length=200)
    display_name: str | None = Field(default=None, max_length=200)
    email: Email | None = None
    phone: str | None = Field(default=None, max_length=50)
    website: str | None = Field(default=None, max_length=200)
    address: AddressInput | None = None
    payment_terms: str | None = Field(default=None, max_length=50)
    tax_id: str | None = Field(default=None, max_length=50)
    bank_name: str | None = Field(default=None, max_length=100)
    bank_account: str | None = Field(default=None, max_length=100)
    notes: str | None = None
    is_active: bool | None = None


class POLineInput(Input):
    item_id: UUID | None = None
    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)

    def to_domain(self) -> PurchaseOrderLine:
        return price_po_line(PurchaseOrderLine(**self.model_dump()))


class POListInput(ListInput):
    status: PurchaseOrderStatus | None = None
    vendor_id: UUID | None = None


class CreatePOInput(Input):
    vendor_id: UUID
    order_date: date | None = None
    expected_date: date | None = None
    lines: list[POLineInput] = Field(min_length=1)
    notes: str | None = None
    submit_for_approval: bool = False


class UpdatePOInput(UpdateInput):
    clearable = frozenset({"expected_date", "notes"})

    id: UUID
    expected_date: date | None = None
    lines: list[POLineInput] | None = Field(default=None, min_length=1)
    notes: str | None = None


class ReceiveLineInput(Input):
    line_number: int = Field(ge=1)
    quantity: Decimal = Field(gt=0)


class ReceivePOInput(Input):
    id: UUID
    warehouse_id: UUID | None = None
    received_date: date | None = None
    lines: list[ReceiveLineInput] | None = None
    notes: str | None = None

    @field_validator("lines")
    @classmethod
    def one_entry_per_line(cls, value: list[ReceiveLineInput] | None):
        if value is not None:
            numbers = [entry.line_number for entry in value]
            if len(numbers) != len(set(numbers)):
                raise ValueError("Each line can appear only once per receipt")
        return value


class BillListInput(ListInput):
    status: InvoiceStatus | None = None
    vendor_id: UUID | None = None


class CreateBillInput(Input):
    vendor_id: UUID
    purchase_order_id: UUID | None = None
    vendor_invoice_number: str | None = Field(default=None, max_length=100)
    bill_date: date | None = None
    due_date: date | None = None
    total: Decimal = Field(gt=0)
    notes: str | None = None


@dataclass(frozen=True)
class VendorDetail:
    vendor: Vendor
    purchase_order_count: int
    bill_count: int


@dataclass(frozen=True)
class PurchaseOrderDetail:
    order: PurchaseOrder
    vendor: Vendor | None
    receipts: list[Receipt]
    bills: list[VendorBill]


def _get_po(uow: UnitOfWork, po_id: UUID) -> PurchaseOrder:
    return get_or_404(uow.purchase_orders, po_id, "Purchase order")


def _with_totals(lines: tuple[PurchaseOrderLine, ...], **changes) -> dict:
    subtotal, tax, total = compute_po_totals(lines)
    return dict(lines=lines, subtotal=subtotal, tax_amount=tax, total=total, **changes)


# ---------------------------------------------------------------------------
# Proveedores
# ---------------------------------------------------------------------------


@router.query("get_vendors", input=VendorListInput, permission=Permission.PURCHASING_VIEW)
def get_vendors(ctx: ProcedureContext, data: VendorListInput) -> list[Vendor]:
    with ctx.store.transaction() as uow:
        return uow.vendors.list(
            filters=present(is_active=data.is_active),
            search=data.search,
            search_fields=("company_name", "display_name", "vendor_number", "email"),
            order_by="company_name",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_vendor", input=IdInput, permission=Permission.PURCHASING_VIEW)
def get_vendor(ctx: ProcedureContext, data: IdInput) -> VendorDetail:
    with ctx.store.transaction() as uow:
        vendor = get_or_404(uow.vendors, data.id, "Vendor")
        return VendorDetail(
            vendor=vendor,
            purchase_order_count=uow.purchase_orders.count({"vendor_id": vendor.id}),
            bill_count=uow.vendor_bills.count({"vendor_id": vendor.id}),
        )


@router.mutation("create_vendor", input=CreateVendorInput, permission=Permission.PURCHASING_CREATE)
def create_vendor(ctx: ProcedureContext, data: CreateVendorInput) -> Vendor:
    now = ctx.now()
    fields = data.model_dump(exclude={"vendor_number", "display_name", "address"})

    def build(number: str) -> Vendor:
        return Vendor(
            vendor_number=number,
            display_name=default_display_name(data.display_name, data.company_name),
            address=data.address.to_domain() if data.address else None,
            created_at=now,
            updated_at=now,
            **fields,
        )

    with ctx.store.transaction() as uow:
        vendor = insert_with_number(
            uow.vendors,
            sequences.VENDOR,
            build,
            explicit=data.vendor_number,
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "Vendor", vendor.id, new=vendor, at=now)
        return vendor


@router.mutation("update_vendor", input=UpdateVendorInput, permission=Permission.PURCHASING_EDIT)
def update_vendor(ctx: ProcedureContext, data: UpdateVendorInput) -> Vendor:
    with ctx.store.transaction() as uow:
        vendor = get_or_404(uow.vendors, data.id, "Vendor")
        changes = changes_of(data)
        if "display_name" in changes or "company_name" in changes:
            changes["display_name"] = default_display_name(
                changes.get("display_name", vendor.display_name),
                changes.get("company_name", vendor.company_name),
            )
        updated = update_unique(
            uow.vendors, touch(ctx, vendor, **changes), "Vendor number already exists"
        )
        record_audit(uow, ctx.actor, "update", "Vendor", vendor.id, old=vendor, new=updated)
        return updated


@router.mutation("delete_vendor", input=IdInput, permission=Permission.PURCHASING_DELETE)
def delete_vendor(ctx: ProcedureContext, data: IdInput) -> dict:
    with ctx.store.transaction() as uow:
        vendor = get_or_404(uow.vendors, data.id, "Vendor")
        if (
            uow.purchase_orders.count({"vendor_id": vendor.id}) > 0
            or uow.vendor_bills.count({"vendor_id": vendor.id}) > 0
        ):
            raise PreconditionFailedError(
                "Cannot delete vendor with existing purchase orders or bills. "
                "Please archive the vendor instead."
            )
        uow.vendors.delete(vendor.id)
        record_audit(uow, ctx.actor, "delete", "Vendor", vendor.id, old=vendor)
    return {"success": True}


# ---------------------------------------------------------------------------
# Órdenes de compra
# ---------------------------------------------------------------------------


@router.query("get_purchase_orders", input=POListInput, permission=Permission.PURCHASING_VIEW)
def get_purchase_orders(ctx: ProcedureContext, data: POListInput) -> list[PurchaseOrder]:
    with ctx.store.transaction() as uow:
        return uow.purchase_orders.list(
            filters=present(status=data.status, vendor_id=data.vendor_id),
            search=data.search,
            search_fields=("po_number", "notes"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_purchase_order", input=IdInput, permission=Permission.PURCHASING_VIEW)
def get_purchase_order(ctx: ProcedureContext, data: IdInput) -> PurchaseOrderDetail:
    with ctx.store.transaction() as uow:
        order = _get_po(uow, data.id)
        return PurchaseOrderDetail(
            order=order,
            vendor=uow.vendors.get(order.vendor_id),
            receipts=uow.receipts.list(filters={"purchase_order_id": order.id}),
            bills=uow.vendor_bills.list(filters={"purchase_order_id": order.id}),
        )


@router.mutation("create_purchase_order", input=CreatePOInput, permission=Permission.PURCHASING_CREATE)
def create_purchase_order(ctx: ProcedureContext, data: CreatePOInput) -> PurchaseOrder:
    now = ctx.now()
    lines = tuple(line.to_domain() for line in data.lines)
    subtotal, tax, total = compute_po_totals(lines)
    status = (
        PurchaseOrderStatus.PENDING_APPROVAL
        if data.submit_for_approval
        else PurchaseOrderStatus.DRAFT
    )

    with ctx.store.transaction() as uow:
        vendor = get_or_404(uow.vendors, data.vendor_id, "Vendor")
        order = allocate_and_insert(
            uow.purchase_orders,
            sequences.PURCHASE_ORDER,
            lambda number: PurchaseOrder(
                po_number=number,
                vendor_id=vendor.id,
                order_date=data.order_date or ctx.today(),
                expected_date=data.expected_date,
                status=status,
                lines=lines,
                subtotal=subtotal,
                tax_amount=tax,
                total=total,
                notes=data.notes,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "PurchaseOrder", order.id, new=order, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.ORDER,
            "Purchase Order Created",
            f"{order.po_number} created for {vendor.company_name} — {format_money(order.total)}",
            f"/purchasing/orders/{order.id}",
            at=now,
        )
        return order


@router.mutation("update_purchase_order", input=UpdatePOInput, permission=Permission.PURCHASING_EDIT)
def update_purchase_order(ctx: ProcedureContext, data: UpdatePOInput) -> PurchaseOrder:
    with ctx.store.transaction() as uow:
        order = _get_po(uow, data.id)
        changes = changes_of(data, exclude=("id", "lines"))
        if data.lines is not None:
            if order.status not in EDITABLE_STATUSES:
                raise PreconditionFailedError(
                    "Line items can only be edited on draft or pending approval orders"
                )
            changes = _with_totals(
                tuple(line.to_domain() for line in data.lines), **changes
            )
        updated = uow.purchase_orders.update(touch(ctx, order, **changes))
        record_audit(uow, ctx.actor, "update", "PurchaseOrder", order.id, old=order, new=updated)
        return updated


@router.mutation("approve_purchase_order", input=IdInput, permission=Permission.PURCHASING_EDIT)
def approve_purchase_order(ctx: ProcedureContext, data: IdInput) -> PurchaseOrder:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        order = _get_po(uow, data.id)
        if order.status not in APPROVABLE_STATUSES:
            raise PreconditionFailedError(
                "Only draft or pending approval orders can be approved"
            )
        approved = uow.purchase_orders.update(
            touch(
                ctx,
                order,
                status=PurchaseOrderStatus.APPROVED,
                approved_by=ctx.actor.user_id,
                approved_at=now,
            )
        )
        record_audit(uow, ctx.actor, "approve", "PurchaseOrder", order.id, old=order, new=approved, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.APPROVAL,
            "Purchase Order Approved",
            f"{approved.po_number} approved — {format_money(approved.total)}",
            f"/purchasing/orders/{approved.id}",
            at=now,
        )
        return approved


@router.mutation("send_purchase_order", input=IdInput, permission=Permission.PURCHASING_EDIT)
def send_purchase_order(ctx: ProcedureContext, data: IdInput) -> PurchaseOrder:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        order = _get_po(uow, data.id)
        if order.status != PurchaseOrderStatus.APPROVED:
            raise PreconditionFailedError("Only approved orders can be sent")
        sent = uow.purchase_orders.update(
            touch(ctx, order, status=PurchaseOrderStatus.SENT, sent_at=now)
        )
        record_audit(uow, ctx.actor, "send", "PurchaseOrder", order.id, old=order, new=sent, at=now)
        return sent


def _receipt_lines(
    order: PurchaseOrder, requested: list[ReceiveLineInput] | None
) -> tuple[ReceiptLine, ...]:
    if requested is None:
        return tuple(
            ReceiptLine(
                line_number=index,
                item_id=line.item_id,
                quantity=line.quantity - line.quantity_received,
            )
            for index, line in enumerate(order.lines, start=1)
            if line.quantity > line.quantity_received
        )
    lines = []
    for entry in requested:
        if entry.line_number > len(order.lines):
            raise ValidationError(
                "Invalid receipt line",
                field_errors={"lines": [f"Line {entry.line_number} does not exist"]},
            )
        line = order.lines[entry.line_number - 1]
        remaining = line.quantity - line.quantity_received
        if entry.quantity > remaining:
            raise ValidationError(
                "Invalid receipt line",
                field_errors={
                    "lines": [
                        f"Line {entry.line_number} exceeds the quantity still to receive "
                        f"({remaining})"
                    ]
                },
            )
        lines.append(
            ReceiptLine(line_number=entry.line_number, item_id=line.item_id, quantity=entry.quantity)
        )
    return tuple(lines)


def _stock_in(
    ctx: ProcedureContext,
    uow: UnitOfWork,
    receipt: Receipt,
    warehouse_id: UUID,
) -> None:
    now = ctx.now()
    for line in receipt.lines:
        if line.item_id is None:
            continue
        level = uow.stock_levels.find_one(item_id=line.item_id, warehouse_id=warehouse_id)
        if level is None:
            uow.stock_levels.add(
                StockLevel(item_id=line.item_id, warehouse_id=warehouse_id).apply(line.quantity, now)
            )
        else:
            uow.stock_levels.update(level.apply(line.quantity, now))
        allocate_and_insert(
            uow.inventory_transactions,
            sequences.INVENTORY_TRANSACTION,
            lambda number, line=line: InventoryTransaction(
                transaction_number=number,
                item_id=line.item_id,
                warehouse_id=warehouse_id,
                transaction_type=TransactionType.RECEIPT,
                quantity=line.quantity,
                transaction_date=receipt.received_date,
                reason=f"Receipt {receipt.receipt_number}",
                reference_id=receipt.id,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )


@router.mutation("receive_purchase_order", input=ReceivePOInput, permission=Permission.PURCHASING_EDIT)
def receive_purchase_order(ctx: ProcedureContext, data: ReceivePOInput) -> Receipt:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        order = _get_po(uow, data.id)
        if order.status not in RECEIVABLE_STATUSES:
            raise PreconditionFailedError("Only approved or sent orders can be received")
        if data.warehouse_id is not None:
            get_or_404(uow.warehouses, data.warehouse_id, "Warehouse")

        lines = _receipt_lines(order, data.lines)
        if not lines:
            raise PreconditionFailedError("All lines have already been received")

        receipt = allocate_and_insert(
            uow.receipts,
            sequences.RECEIPT,
            lambda number: Receipt(
                receipt_number=number,
                purchase_order_id=order.id,
                received_date=data.received_date or ctx.today(),
                warehouse_id=data.warehouse_id,
                lines=lines,
                notes=data.notes,
                received_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )

        received_by_line = {line.line_number: line.quantity for line in lines}
        updated_lines = tuple(
            PurchaseOrderLine(
                item_id=line.item_id,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                tax_rate=line.tax_rate,
                amount=line.amount,
                quantity_received=line.quantity_received + received_by_line.get(index, Decimal("0")),
            )
            for index, line in enumerate(order.lines, start=1)
        )
        received = uow.purchase_orders.update(
            touch(
                ctx,
                order,
                lines=updated_lines,
                status=PurchaseOrderStatus.RECEIVED,
                received_at=now,
            )
        )
        if data.warehouse_id is not None:
            _stock_in(ctx, uow, receipt, data.warehouse_id)

        record_audit(uow, ctx.actor, "receive", "PurchaseOrder", order.id, old=order, new=received, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.SUCCESS,
            "Purchase Order Received",
            f"{order.po_number} received ({receipt.receipt_number})",
            f"/purchasing/orders/{order.id}",
            at=now,
        )
        return receipt


@router.mutation("close_purchase_order", input=IdInput, permission=Permission.PURCHASING_EDIT)
def close_purchase_order(ctx: ProcedureContext, data: IdInput) -> PurchaseOrder:
    with ctx.store.transaction() as uow:
        order = _get_po(uow, data.id)
        if order.status != PurchaseOrderStatus.RECEIVED:
            raise PreconditionFailedError("Only received orders can be closed")
        closed = uow.purchase_orders.update(
            touch(ctx, order, status=PurchaseOrderStatus.CLOSED)
        )
        record_audit(uow, ctx.actor, "close", "PurchaseOrder", order.id, old=order, new=closed)
        return closed


@router.mutation("cancel_purchase_order", input=IdInput, permission=Permission.PURCHASING_EDIT)
def cancel_purchase_order(ctx: ProcedureContext, data: IdInput) -> PurchaseOrder:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        order = _get_po(uow, data.id)
        if uow.receipts.count({"purchase_order_id": order.id}) > 0:
            raise PreconditionFailedError("Cannot cancel a purchase order with receipts")
        if order.status not in CANCELLABLE_STATUSES:
            raise PreconditionFailedError(
                f"Purchase orders in status {order.status.value} cannot be cancelled"
            )
        cancelled = uow.purchase_orders.update(
            touch(ctx, order, status=PurchaseOrderStatus.CANCELLED)
        )
        record_audit(uow, ctx.actor, "cancel", "PurchaseOrder", order.id, old=order, new=cancelled, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.ALERT,
            "Purchase Order Cancelled",
            f"{order.po_number} cancelled",
            f"/purchasing/orders/{order.id}",
            at=now,
        )
        return cancelled


# ---------------------------------------------------------------------------
# Facturas de proveedor
# ---------------------------------------------------------------------------


@router.query("get_vendor_bills", input=BillListInput, permission=Permission.PURCHASING_VIEW)
def get_vendor_bills(ctx: ProcedureContext, data: BillListInput) -> list[VendorBill]:
    with ctx.store.transaction() as uow:
        return uow.vendor_bills.list(
            filters=present(status=data.status, vendor_id=data.vendor_id),
            search=data.search,
            search_fields=("bill_number", "vendor_invoice_number"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.mutation("create_vendor_bill", input=CreateBillInput, permission=Permission.PURCHASING_CREATE)
def create_vendor_bill(ctx: ProcedureContext, data: CreateBillInput) -> VendorBill:
    now = ctx.now()
    total = to_money(data.total)
    bill_date = data.bill_date or ctx.today()

    with ctx.store.transaction() as uow:
        vendor = get_or_404(uow.vendors, data.vendor_id, "Vendor")
        if data.purchase_order_id is not None:
            order = _get_po(uow, data.purchase_order_id)
            if order.vendor_id != vendor.id:
                raise PreconditionFailedError("Purchase order belongs to a different vendor")

        bill = allocate_and_insert(
            uow.vendor_bills,
            sequences.VENDOR_BILL,
            lambda number: VendorBill(
                bill_number=number,
                vendor_id=vendor.id,
                purchase_order_id=data.purchase_order_id,
                vendor_invoice_number=data.vendor_invoice_number,
                bill_date=bill_date,
                due_date=data.due_date or due_date_for(bill_date, vendor.payment_terms),
                total=total,
                amount_due=total,
                notes=data.notes,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "VendorBill", bill.id, new=bill, at=now)
        return bill
