"""
===============================================================================
TARJETA CRC — application/procedures/sales.py
===============================================================================

Procedimientos (permisos sales:*):
  - Órdenes:      get_sales_orders / get_sales_order / create_sales_order /
                  update_sales_order
  - Cotizaciones: get_quotes / get_quote / create_quote / update_quote /
                  delete_quote / convert_quote_to_order
  - Facturas:     get_invoices / get_invoice / create_invoice / update_invoice /
                  void_invoice
  - Pagos:        record_payment / delete_payment

Reglas de negocio:
  R1) Totales recalculados en cada escritura (domain.sales).
  R2) Un cambio de estado de la orden emite UNA notificación (si el estado
      tiene etiqueta).
  R3) Una cotización aceptada no se vuelve a convertir.
  R4) Factura: open -> partially_paid -> paid; void solo sin pagos.
  R5) Un pago no puede superar el saldo; una factura void o paga no acepta pagos.
  R6) Borrar un pago revierte montos y estado de la factura.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from ...crosscutting.exceptions import PreconditionFailedError
from ...domain import sequences
from ...domain.money import ZERO, format_money, to_money
from ...domain.notifications import NotificationType
from ...domain.parties import Customer
from ...domain.permissions import Permission
from ...domain.repositories import UnitOfWork
from ...domain.sales import (
    DEFAULT_PAYMENT_TERMS,
    SALES_ORDER_STATUS_NOTIFICATIONS,
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    LineItem,
    Payment,
    PaymentMethod,
    Quote,
    QuoteStatus,
    SalesOrder,
    SalesOrderStatus,
    compute_order_totals,
    due_date_for,
    payment_status,
    price_invoice_line,
    price_line,
)
from ..audit import record_audit
from ..notifications import emit_notification
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import allocate_and_insert
from ._common import (
    AddressInput,
    IdInput,
    Input,
    ListInput,
    UpdateInput,
    changes_of,
    get_or_404,
    page_limit,
    present,
    touch,
)

router = ProcedureRouter("sales")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class LineInput(Input):
    item_id: UUID | None = None
    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)

    def to_domain(self) -> LineItem:
        return price_line(LineItem(**self.model_dump()))


class SalesOrderListInput(ListInput):
    status: SalesOrderStatus | None = None
    customer_id: UUID | None = None


class CreateSalesOrderInput(Input):
    customer_id: UUID
    order_date: date | None = None
    expected_ship_date: date | None = None
    lines: list[LineInput] = Field(min_length=1)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_address: AddressInput | None = None
    notes: str | None = None


class UpdateSalesOrderInput(UpdateInput):
    clearable = frozenset({"expected_ship_date", "shipping_address", "notes"})

    id: UUID
    status: SalesOrderStatus | None = None
    expected_ship_date: date | None = None
    shipping_address: AddressInput | None = None
    shipping_cost: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


class QuoteListInput(ListInput):
    status: QuoteStatus | None = None
    customer_id: UUID | None = None


class CreateQuoteInput(Input):
    customer_id: UUID
    quote_date: date | None = None
    expiration_date: date | None = None
    lines: list[LineInput] = Field(min_length=1)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    notes: str | None = None


class UpdateQuoteInput(UpdateInput):
    clearable = frozenset({"expiration_date", "notes"})

    id: UUID
    status: QuoteStatus | None = None
    expiration_date: date | None = None
    notes: str | None = None


class ConvertQuoteInput(Input):
    quote_id: UUID


class InvoiceLineInput(Input):
    item_id: UUID | None = None
    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(gt=0)

    def to_domain(self) -> InvoiceLine:
        return price_invoice_line(InvoiceLine(**self.model_dump()))


class InvoiceListInput(ListInput):
    status: InvoiceStatus | None = None
    customer_id: UUID | None = None


class CreateInvoiceInput(Input):
    customer_id: UUID
    sales_order_id: UUID | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    terms: str = Field(default=DEFAULT_PAYMENT_TERMS, max_length=50)
    lines: list[InvoiceLineInput] = Field(min_length=1)
    notes: str | None = None


class UpdateInvoiceInput(UpdateInput):
    clearable = frozenset({"notes"})

    id: UUID
    due_date: date | None = None
    terms: str | None = Field(default=None, max_length=50)
    notes: str | None = None


class RecordPaymentInput(Input):
    invoice_id: UUID
    amount: Decimal = Field(gt=0)
    payment_date: date | None = None
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: str | None = Field(default=None, max_length=100)
    notes: str | None = None


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SalesOrderDetail:
    order: SalesOrder
    customer: Customer | None
    invoices: list[Invoice]


@dataclass(frozen=True)
class QuoteDetail:
    quote: Quote
    customer: Customer | None


@dataclass(frozen=True)
class InvoiceDetail:
    invoice: Invoice
    customer: Customer | None
    payments: list[Payment]


@dataclass(frozen=True)
class PaymentResult:
    payment: Payment
    invoice: Invoice


def _customer(uow: UnitOfWork, customer_id: UUID) -> Customer:
    return get_or_404(uow.customers, customer_id, "Customer")


# ---------------------------------------------------------------------------
# Órdenes de venta
# ---------------------------------------------------------------------------


@router.query("get_sales_orders", input=SalesOrderListInput, permission=Permission.SALES_VIEW)
def get_sales_orders(ctx: ProcedureContext, data: SalesOrderListInput) -> list[SalesOrder]:
    with ctx.store.transaction() as uow:
        return uow.sales_orders.list(
            filters=present(status=data.status, customer_id=data.customer_id),
            search=data.search,
            search_fields=("order_number", "notes"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_sales_order", input=IdInput, permission=Permission.SALES_VIEW)
def get_sales_order(ctx: ProcedureContext, data: IdInput) -> SalesOrderDetail:
    with ctx.store.transaction() as uow:
        order = get_or_404(uow.sales_orders, data.id, "Sales order")
        return SalesOrderDetail(
            order=order,
            customer=uow.customers.get(order.customer_id),
            invoices=uow.invoices.list(filters={"sales_order_id": order.id}),
        )


@router.mutation("create_sales_order", input=CreateSalesOrderInput, permission=Permission.SALES_CREATE)
def create_sales_order(ctx: ProcedureContext, data: CreateSalesOrderInput) -> SalesOrder:
    now = ctx.now()
    lines = tuple(line.to_domain() for line in data.lines)
    totals = compute_order_totals(
        lines, discount_percent=data.discount_percent, shipping_cost=data.shipping_cost
    )

    with ctx.store.transaction() as uow:
        customer = _customer(uow, data.customer_id)
        order = allocate_and_insert(
            uow.sales_orders,
            sequences.SALES_ORDER,
            lambda number: SalesOrder(
                order_number=number,
                customer_id=customer.id,
                order_date=data.order_date or ctx.today(),
                expected_ship_date=data.expected_ship_date,
                lines=lines,
                discount_percent=data.discount_percent,
                shipping_cost=to_money(data.shipping_cost),
                subtotal=totals.subtotal,
                discount_amount=totals.discount_amount,
                tax_amount=totals.tax_amount,
                total=totals.total,
                shipping_address=(
                    data.shipping_address.to_domain()
                    if data.shipping_address
                    else customer.shipping_address
                ),
                notes=data.notes,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "SalesOrder", order.id, new=order, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.ORDER,
            "Sales Order Created",
            f"{order.order_number} created for {customer.company_name} — {format_money(order.total)}",
            f"/sales/orders/{order.id}",
            at=now,
        )
        return order


@router.mutation("update_sales_order", input=UpdateSalesOrderInput, permission=Permission.SALES_EDIT)
def update_sales_order(ctx: ProcedureContext, data: UpdateSalesOrderInput) -> SalesOrder:
    with ctx.store.transaction() as uow:
        order = get_or_404(uow.sales_orders, data.id, "Sales order")
        changes = changes_of(data)
        if "shipping_cost" in changes:
            shipping = changes["shipping_cost"] or ZERO
            totals = compute_order_totals(
                order.lines, discount_percent=order.discount_percent, shipping_cost=shipping
            )
            changes.update(shipping_cost=to_money(shipping), total=totals.total)
        updated = uow.sales_orders.update(touch(ctx, order, **changes))
        record_audit(uow, ctx.actor, "update", "SalesOrder", order.id, old=order, new=updated)

        if data.status is not None and data.status != order.status:
            label = SALES_ORDER_STATUS_NOTIFICATIONS.get(data.status)
            if label is not None:
                title, kind = label
                emit_notification(
                    uow,
                    ctx.actor.user_id,
                    kind,
                    title,
                    f"{updated.order_number} status changed to {data.status.value} — "
                    f"{format_money(updated.total)}",
                    f"/sales/orders/{updated.id}",
                )
        return updated


# ---------------------------------------------------------------------------
# Cotizaciones
# ---------------------------------------------------------------------------


@router.query("get_quotes", input=QuoteListInput, permission=Permission.SALES_VIEW)
def get_quotes(ctx: ProcedureContext, data: QuoteListInput) -> list[Quote]:
    with ctx.store.transaction() as uow:
        return uow.quotes.list(
            filters=present(status=data.status, customer_id=data.customer_id),
            search=data.search,
            search_fields=("quote_number", "notes"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_quote", input=IdInput, permission=Permission.SALES_VIEW)
def get_quote(ctx: ProcedureContext, data: IdInput) -> QuoteDetail:
    with ctx.store.transaction() as uow:
        quote = get_or_404(uow.quotes, data.id, "Quote")
        return QuoteDetail(quote=quote, customer=uow.customers.get(quote.customer_id))


@router.mutation("create_quote", input=CreateQuoteInput, permission=Permission.SALES_CREATE)
def create_quote(ctx: ProcedureContext, data: CreateQuoteInput) -> Quote:
    now = ctx.now()
    lines = tuple(line.to_domain() for line in data.lines)
    totals = compute_order_totals(lines, discount_percent=data.discount_percent)

    with ctx.store.transaction() as uow:
        customer = _customer(uow, data.customer_id)
        quote = allocate_and_insert(
            uow.quotes,
            sequences.QUOTE,
            lambda number: Quote(
                quote_number=number,
                customer_id=customer.id,
                quote_date=data.quote_date or ctx.today(),
                expiration_date=data.expiration_date,
                lines=lines,
                discount_percent=data.discount_percent,
                subtotal=totals.subtotal,
                discount_amount=totals.discount_amount,
                tax_amount=totals.tax_amount,
                total=totals.total,
                notes=data.notes,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "Quote", quote.id, new=quote, at=now)
        return quote


@router.mutation("update_quote", input=UpdateQuoteInput, permission=Permission.SALES_EDIT)
def update_quote(ctx: ProcedureContext, data: UpdateQuoteInput) -> Quote:
    with ctx.store.transaction() as uow:
        quote = get_or_404(uow.quotes, data.id, "Quote")
        updated = uow.quotes.update(touch(ctx, quote, **changes_of(data)))
        record_audit(uow, ctx.actor, "update", "Quote", quote.id, old=quote, new=updated)
        return updated


@router.mutation("delete_quote", input=IdInput, permission=Permission.SALES_DELETE)
def delete_quote(ctx: ProcedureContext, data: IdInput) -> dict:
    with ctx.store.transaction() as uow:
        quote = get_or_404(uow.quotes, data.id, "Quote")
        if quote.status == QuoteStatus.ACCEPTED:
            raise PreconditionFailedError("Accepted quotes cannot be deleted")
        uow.quotes.delete(quote.id)
        record_audit(uow, ctx.actor, "delete", "Quote", quote.id, old=quote)
    return {"success": True}


@router.mutation("convert_quote_to_order", input=ConvertQuoteInput, permission=Permission.SALES_CREATE)
def convert_quote_to_order(ctx: ProcedureContext, data: ConvertQuoteInput) -> SalesOrder:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        quote = get_or_404(uow.quotes, data.quote_id, "Quote")
        if quote.status == QuoteStatus.ACCEPTED:
            raise PreconditionFailedError("Quote has already been converted")
        customer = _customer(uow, quote.customer_id)

        order = allocate_and_insert(
            uow.sales_orders,
            sequences.SALES_ORDER,
            lambda number: SalesOrder(
                order_number=number,
                customer_id=quote.customer_id,
                order_date=ctx.today(),
                lines=quote.lines,
                discount_percent=quote.discount_percent,
                subtotal=quote.subtotal,
                discount_amount=quote.discount_amount,
                tax_amount=quote.tax_amount,
                total=quote.total,
                shipping_address=customer.shipping_address,
                quote_id=quote.id,
                notes=quote.notes,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        accepted = uow.quotes.update(
            touch(ctx, quote, status=QuoteStatus.ACCEPTED, sales_order_id=order.id)
        )
        record_audit(uow, ctx.actor, "create", "SalesOrder", order.id, new=order, at=now)
        record_audit(uow, ctx.actor, "convert", "Quote", quote.id, old=quote, new=accepted, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.ORDER,
            "Quote Converted to Order",
            f"{quote.quote_number} converted to {order.order_number} for "
            f"{customer.company_name} — {format_money(order.total)}",
            f"/sales/orders/{order.id}",
            at=now,
        )
        return order


# ---------------------------------------------------------------------------
# Facturas
# ---------------------------------------------------------------------------


@router.query("get_invoices", input=InvoiceListInput, permission=Permission.SALES_VIEW)
def get_invoices(ctx: ProcedureContext, data: InvoiceListInput) -> list[Invoice]:
    with ctx.store.transaction() as uow:
        return uow.invoices.list(
            filters=present(status=data.status, customer_id=data.customer_id),
            search=data.search,
            search_fields=("invoice_number", "notes"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_invoice", input=IdInput, permission=Permission.SALES_VIEW)
def get_invoice(ctx: ProcedureContext, data: IdInput) -> InvoiceDetail:
    with ctx.store.transaction() as uow:
        invoice = get_or_404(uow.invoices, data.id, "Invoice")
        return InvoiceDetail(
            invoice=invoice,
            customer=uow.customers.get(invoice.customer_id),
            payments=uow.payments.list(
                filters={"invoice_id": invoice.id}, order_by="payment_date"
            ),
        )


@router.mutation("create_invoice", input=CreateInvoiceInput, permission=Permission.SALES_CREATE)
def create_invoice(ctx: ProcedureContext, data: CreateInvoiceInput) -> Invoice:
    now = ctx.now()
    lines = tuple(line.to_domain() for line in data.lines)
    subtotal = to_money(sum((line.amount for line in lines), ZERO))
    invoice_date = data.invoice_date or ctx.today()

    with ctx.store.transaction() as uow:
        customer = _customer(uow, data.customer_id)
        if data.sales_order_id is not None:
            get_or_404(uow.sales_orders, data.sales_order_id, "Sales order")

        invoice = allocate_and_insert(
            uow.invoices,
            sequences.INVOICE,
            lambda number: Invoice(
                invoice_number=number,
                customer_id=customer.id,
                sales_order_id=data.sales_order_id,
                invoice_date=invoice_date,
                due_date=data.due_date or due_date_for(invoice_date, data.terms),
                terms=data.terms,
                lines=lines,
                subtotal=subtotal,
                tax_amount=ZERO,
                total=subtotal,
                amount_paid=ZERO,
                amount_due=subtotal,
                notes=data.notes,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "Invoice", invoice.id, new=invoice, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.INFO,
            "Invoice Created",
            f"{invoice.invoice_number} created for {customer.company_name} — "
            f"{format_money(invoice.total)}",
            f"/sales/invoices/{invoice.id}",
            at=now,
        )
        return invoice


@router.mutation("update_invoice", input=UpdateInvoiceInput, permission=Permission.SALES_EDIT)
def update_invoice(ctx: ProcedureContext, data: UpdateInvoiceInput) -> Invoice:
    with ctx.store.transaction() as uow:
        invoice = get_or_404(uow.invoices, data.id, "Invoice")
        if invoice.status == InvoiceStatus.VOID:
            raise PreconditionFailedError("Void invoices cannot be modified")
        changes = changes_of(data)
        if "terms" in changes and "due_date" not in changes:
            changes["due_date"] = due_date_for(invoice.invoice_date, changes["terms"])
        updated = uow.invoices.update(touch(ctx, invoice, **changes))
        record_audit(uow, ctx.actor, "update", "Invoice", invoice.id, old=invoice, new=updated)
        return updated


@router.mutation("void_invoice", input=IdInput, permission=Permission.SALES_EDIT)
def void_invoice(ctx: ProcedureContext, data: IdInput) -> Invoice:
    with ctx.store.transaction() as uow:
        invoice = get_or_404(uow.invoices, data.id, "Invoice")
        if invoice.status == InvoiceStatus.VOID:
            raise PreconditionFailedError("Invoice is already void")
        if invoice.amount_paid > ZERO or uow.payments.count({"invoice_id": invoice.id}) > 0:
            raise PreconditionFailedError(
                "Cannot void an invoice with payments. Please reverse payments first."
            )
        voided = uow.invoices.update(
            touch(ctx, invoice, status=InvoiceStatus.VOID, amount_due=ZERO)
        )
        record_audit(uow, ctx.actor, "void", "Invoice", invoice.id, old=invoice, new=voided)
        return voided


# ---------------------------------------------------------------------------
# Pagos
# ---------------------------------------------------------------------------


@router.mutation("record_payment", input=RecordPaymentInput, permission=Permission.SALES_CREATE)
def record_payment(ctx: ProcedureContext, data: RecordPaymentInput) -> PaymentResult:
    now = ctx.now()
    amount = to_money(data.amount)

    with ctx.store.transaction() as uow:
        invoice = get_or_404(uow.invoices, data.invoice_id, "Invoice")
        if invoice.status == InvoiceStatus.VOID:
            raise PreconditionFailedError("Cannot record payment on a void invoice")
        if invoice.status == InvoiceStatus.PAID:
            raise PreconditionFailedError("Invoice is already fully paid")
        if amount > invoice.amount_due:
            raise PreconditionFailedError(
                f"Payment amount ({format_money(amount)}) exceeds balance due "
                f"({format_money(invoice.amount_due)})"
            )

        payment = allocate_and_insert(
            uow.payments,
            sequences.PAYMENT,
            lambda number: Payment(
                payment_number=number,
                invoice_id=invoice.id,
                customer_id=invoice.customer_id,
                amount=amount,
                payment_date=data.payment_date or ctx.today(),
                method=data.method,
                reference=data.reference,
                notes=data.notes,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        amount_paid = to_money(invoice.amount_paid + amount)
        amount_due = to_money(invoice.total - amount_paid)
        updated = uow.invoices.update(
            touch(
                ctx,
                invoice,
                amount_paid=amount_paid,
                amount_due=amount_due,
                status=payment_status(amount_paid, amount_due),
            )
        )
        record_audit(uow, ctx.actor, "create", "Payment", payment.id, new=payment, at=now)
        emit_notification(
            uow,
            ctx.actor.user_id,
            NotificationType.PAYMENT,
            "Payment Recorded",
            f"{payment.payment_number} — {format_money(amount)} received "
            f"({invoice.invoice_number})",
            f"/sales/invoices/{invoice.id}",
            at=now,
        )
        return PaymentResult(payment=payment, invoice=updated)


@router.mutation("delete_payment", input=IdInput, permission=Permission.SALES_DELETE)
def delete_payment(ctx: ProcedureContext, data: IdInput) -> Invoice:
    with ctx.store.transaction() as uow:
        payment = get_or_404(uow.payments, data.id, "Payment")
        invoice = get_or_404(uow.invoices, payment.invoice_id, "Invoice")
        amount_paid = max(ZERO, to_money(invoice.amount_paid - payment.amount))
        amount_due = to_money(invoice.total - amount_paid)
        uow.payments.delete(payment.id)
        updated = uow.invoices.update(
            replace(
                invoice,
                amount_paid=amount_paid,
                amount_due=amount_due,
                status=payment_status(amount_paid, amount_due),
                updated_at=ctx.now(),
            )
        )
        record_audit(uow, ctx.actor, "delete", "Payment", payment.id, old=payment)
        return updated
