"""
===============================================================================
TARJETA CRC — domain/sales.py
===============================================================================

Módulo:
    Ventas: órdenes, cotizaciones, facturas y pagos

Responsabilidades:
    - Definir SalesOrder, Quote, Invoice, Payment y sus líneas embebidas.
    - Calcular totales de líneas (descuento, impuesto, envío).
    - Calcular vencimiento de factura a partir de términos "Net N".
    - Derivar el estado de pago de una factura.

Colaboradores:
    - application/procedures/sales.py
    - domain.money

Reglas de cálculo (órdenes y cotizaciones):
    - línea   = qty * precio * (1 - desc%/100)
    - subtotal = Σ líneas
    - descuento = subtotal * desc_orden%/100
    - impuesto = (subtotal - descuento) * promedio(tasa de línea)/100
    - total = (subtotal - descuento) + impuesto + envío
===============================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from .money import HUNDRED, ZERO, average_rate, money_sum, to_money
from .records import Address, Record

DEFAULT_PAYMENT_TERMS = "Net 30"
_DEFAULT_TERM_DAYS = 30


class SalesOrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class InvoiceStatus(str, Enum):
    OPEN = "open"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    VOID = "void"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


@dataclass(frozen=True, kw_only=True)
class LineItem:
    item_id: UUID | None = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    amount: Decimal = ZERO


@dataclass(frozen=True, kw_only=True)
class OrderTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True, kw_only=True)
class SalesOrder(Record):
    order_number: str
    customer_id: UUID
    order_date: date
    expected_ship_date: date | None = None
    status: SalesOrderStatus = SalesOrderStatus.DRAFT
    lines: tuple[LineItem, ...] = ()
    subtotal: Decimal = ZERO
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    total: Decimal = ZERO
    shipping_address: Address | None = None
    quote_id: UUID | None = None
    notes: str | None = None
    created_by: UUID | None = None

    def business_key(self) -> str | None:
        return self.order_number


@dataclass(frozen=True, kw_only=True)
class Quote(Record):
    quote_number: str
    customer_id: UUID
    quote_date: date
    expiration_date: date | None = None
    status: QuoteStatus = QuoteStatus.DRAFT
    lines: tuple[LineItem, ...] = ()
    subtotal: Decimal = ZERO
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO
    sales_order_id: UUID | None = None
    notes: str | None = None
    created_by: UUID | None = None

    def business_key(self) -> str | None:
        return self.quote_number


@dataclass(frozen=True, kw_only=True)
class InvoiceLine:
    item_id: UUID | None = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal = ZERO


@dataclass(frozen=True, kw_only=True)
class Invoice(Record):
    invoice_number: str
    customer_id: UUID
    sales_order_id: UUID | None = None
    invoice_date: date
    due_date: date
    terms: str = DEFAULT_PAYMENT_TERMS
    lines: tuple[InvoiceLine, ...] = ()
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO
    amount_paid: Decimal = ZERO
    amount_due: Decimal = ZERO
    status: InvoiceStatus = InvoiceStatus.OPEN
    notes: str | None = None
    created_by: UUID | None = None

    def business_key(self) -> str | None:
        return self.invoice_number


@dataclass(frozen=True, kw_only=True)
class Payment(Record):
    payment_number: str
    invoice_id: UUID
    customer_id: UUID
    amount: Decimal
    payment_date: date
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: str | None = None
    notes: str | None = None
    created_by: UUID | None = None

    def business_key(self) -> str | None:
        return self.payment_number


# ---------------------------------------------------------------------------
# Cálculos
# ---------------------------------------------------------------------------
def price_line(line: LineItem) -> LineItem:
    """Devuelve la línea con amount recalculado."""
    factor = Decimal("1") - line.discount_percent / HUNDRED
    amount = to_money(line.quantity * line.unit_price * factor)
    return LineItem(
        item_id=line.item_id,
        description=line.description,
        quantity=line.quantity,
        unit_price=line.unit_price,
        discount_percent=line.discount_percent,
        tax_rate=line.tax_rate,
        amount=amount,
    )


def compute_order_totals(
    lines: Iterable[LineItem],
    *,
    discount_percent: Decimal = Decimal("0"),
    shipping_cost: Decimal = ZERO,
) -> OrderTotals:
    """Totales de una orden/cotización. Las líneas deben venir con amount calculado."""
    lines = list(lines)
    subtotal = money_sum(line.amount for line in lines)
    discount_amount = to_money(subtotal * discount_percent / HUNDRED)
    taxable = subtotal - discount_amount
    tax_amount = to_money(taxable * average_rate(l.tax_rate for l in lines) / HUNDRED)
    return OrderTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=to_money(taxable + tax_amount + to_money(shipping_cost)),
    )


def price_invoice_line(line: InvoiceLine) -> InvoiceLine:
    return InvoiceLine(
        item_id=line.item_id,
        description=line.description,
        quantity=line.quantity,
        unit_price=line.unit_price,
        amount=to_money(line.quantity * line.unit_price),
    )


def term_days(terms: str | None) -> int:
    """Días de "Net N" (30 si no se puede interpretar)."""
    match = re.search(r"net\s*(\d+)", terms or "", flags=re.IGNORECASE)
    return int(match.group(1)) if match else _DEFAULT_TERM_DAYS


def due_date_for(invoice_date: date, terms: str | None) -> date:
    return invoice_date + timedelta(days=term_days(terms))


def payment_status(amount_paid: Decimal, amount_due: Decimal) -> InvoiceStatus:
    """Estado derivado de los montos (nunca VOID)."""
    if amount_paid <= ZERO:
        return InvoiceStatus.OPEN
    if amount_due <= ZERO:
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIALLY_PAID


SALES_ORDER_STATUS_NOTIFICATIONS: dict[SalesOrderStatus, tuple[str, str]] = {
    SalesOrderStatus.CONFIRMED: ("Sales Order Confirmed", "order"),
    SalesOrderStatus.SHIPPED: ("Sales Order Shipped", "order"),
    SalesOrderStatus.DELIVERED: ("Sales Order Delivered", "success"),
    SalesOrderStatus.CANCELLED: ("Sales Order Cancelled", "alert"),
    SalesOrderStatus.CLOSED: ("Sales Order Closed", "order"),
}
