"""
===============================================================================
TARJETA CRC — domain/purchasing.py
===============================================================================

Módulo:
    Compras: órdenes de compra, recepciones y facturas de proveedor

Responsabilidades:
    - Definir PurchaseOrder (con líneas embebidas), Receipt y VendorBill.
    - Declarar la máquina de estados de la orden de compra.
    - Calcular totales (impuesto = subtotal * promedio(tasa)/100).

Máquina de estados (PurchaseOrder):
    draft / pending_approval -> approved -> sent -> received -> closed
    cancelled solo antes de cualquier recepción.
    Edición de líneas solo en draft / pending_approval.

Colaboradores:
    - application/procedures/purchasing.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from .money import HUNDRED, ZERO, average_rate, money_sum, to_money
from .records import Record
from .sales import InvoiceStatus


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SENT = "sent"
    RECEIVED = "received"
    CLOSED = "closed"
    CANCELLED = "cancelled"


EDITABLE_STATUSES = frozenset(
    {PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.PENDING_APPROVAL}
)
APPROVABLE_STATUSES = EDITABLE_STATUSES
RECEIVABLE_STATUSES = frozenset(
    {PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.SENT}
)
CANCELLABLE_STATUSES = frozenset(
    {
        PurchaseOrderStatus.DRAFT,
        PurchaseOrderStatus.PENDING_APPROVAL,
        PurchaseOrderStatus.APPROVED,
        PurchaseOrderStatus.SENT,
    }
)


@dataclass(frozen=True, kw_only=True)
class PurchaseOrderLine:
    item_id: UUID | None = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal = Decimal("0")
    amount: Decimal = ZERO
    quantity_received: Decimal = Decimal("0")


@dataclass(frozen=True, kw_only=True)
class PurchaseOrder(Record):
    po_number: str
    vendor_id: UUID
    order_date: date
    expected_date: date | None = None
    status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT
    lines: tuple[PurchaseOrderLine, ...] = ()
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO
    notes: str | None = None
    created_by: UUID | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    sent_at: datetime | None = None
    received_at: datetime | None = None

    def business_key(self) -> str | None:
        return self.po_number


@dataclass(frozen=True, kw_only=True)
class ReceiptLine:
    line_number: int
    item_id: UUID | None = None
    quantity: Decimal


@dataclass(frozen=True, kw_only=True)
class Receipt(Record):
    receipt_number: str
    purchase_order_id: UUID
    received_date: date
    warehouse_id: UUID | None = None
    lines: tuple[ReceiptLine, ...] = ()
    notes: str | None = None
    received_by: UUID | None = None

    def business_key(self) -> str | None:
        return self.receipt_number


@dataclass(frozen=True, kw_only=True)
class VendorBill(Record):
    bill_number: str
    vendor_id: UUID
    purchase_order_id: UUID | None = None
    vendor_invoice_number: str | None = None
    bill_date: date
    due_date: date
    total: Decimal
    amount_paid: Decimal = ZERO
    amount_due: Decimal = ZERO
    status: InvoiceStatus = InvoiceStatus.OPEN
    notes: str | None = None

    def business_key(self) -> str | None:
        return self.bill_number


def price_po_line(line: PurchaseOrderLine) -> PurchaseOrderLine:
    return PurchaseOrderLine(
        item_id=line.item_id,
        description=line.description,
        quantity=line.quantity,
        unit_price=line.unit_price,
        tax_rate=line.tax_rate,
        amount=to_money(line.quantity * line.unit_price),
        quantity_received=line.quantity_received,
    )


def compute_po_totals(
    lines: Iterable[PurchaseOrderLine],
) -> tuple[Decimal, Decimal, Decimal]:
    """(subtotal, impuesto, total)."""
    lines = list(lines)
    subtotal = money_sum(line.amount for line in lines)
    tax = to_money(subtotal * average_rate(l.tax_rate for l in lines) / HUNDRED)
    return subtotal, tax, to_money(subtotal + tax)
