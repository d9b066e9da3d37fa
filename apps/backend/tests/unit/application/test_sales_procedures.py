"""
Name: Sales Procedure Tests

Responsibilities:
  - Invoice payment rules (overpayment, partial, void with payments)
  - Quote conversion is one-shot
  - Status change notifications
"""

from decimal import Decimal

import pytest

from erp.crosscutting.exceptions import PreconditionFailedError
from erp.domain.sales import InvoiceStatus, QuoteStatus, SalesOrderStatus

pytestmark = pytest.mark.unit


def _invoice(call, customer, unit_price="500"):
    return call(
        "sales.create_invoice",
        {
            "customer_id": str(customer.id),
            "lines": [{"description": "Consulting", "quantity": "1", "unit_price": unit_price}],
        },
    )


def _notifications(store, principal):
    with store.transaction() as uow:
        return uow.notifications.list_for_user(principal.user_id, limit=100)


def test_invoice_starts_open_with_full_amount_due(call, customer):
    invoice = _invoice(call, customer)

    assert invoice.invoice_number == "INV-10001"
    assert invoice.status == InvoiceStatus.OPEN
    assert invoice.amount_due == Decimal("500.00")
    assert invoice.due_date > invoice.invoice_date


def test_overpayment_is_rejected_and_invoice_unchanged(call, store, customer):
    invoice = _invoice(call, customer)

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("sales.record_payment", {"invoice_id": str(invoice.id), "amount": "600"})

    assert "exceeds balance due" in exc_info.value.message
    with store.transaction() as uow:
        stored = uow.invoices.get(invoice.id)
        assert stored.amount_paid == Decimal("0")
        assert stored.status == InvoiceStatus.OPEN
        assert uow.payments.count() == 0


def test_partial_then_full_payment(call, customer):
    invoice = _invoice(call, customer)

    first = call("sales.record_payment", {"invoice_id": str(invoice.id), "amount": "200"})
    assert first.invoice.status == InvoiceStatus.PARTIALLY_PAID
    assert first.invoice.amount_due == Decimal("300.00")

    second = call("sales.record_payment", {"invoice_id": str(invoice.id), "amount": "300"})
    assert second.invoice.status == InvoiceStatus.PAID
    assert second.invoice.amount_due == Decimal("0.00")

    with pytest.raises(PreconditionFailedError):
        call("sales.record_payment", {"invoice_id": str(invoice.id), "amount": "1"})


def test_void_invoice_with_payments_fails(call, customer):
    invoice = _invoice(call, customer)
    call("sales.record_payment", {"invoice_id": str(invoice.id), "amount": "100"})

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("sales.void_invoice", {"id": str(invoice.id)})
    assert "reverse payments" in exc_info.value.message


def test_deleting_payment_reopens_invoice(call, customer):
    invoice = _invoice(call, customer)
    result = call("sales.record_payment", {"invoice_id": str(invoice.id), "amount": "500"})

    reopened = call("sales.delete_payment", {"id": str(result.payment.id)})

    assert reopened.status == InvoiceStatus.OPEN
    assert reopened.amount_due == Decimal("500.00")


def test_void_invoice_zeroes_amount_due(call, customer):
    invoice = _invoice(call, customer)

    voided = call("sales.void_invoice", {"id": str(invoice.id)})

    assert voided.status == InvoiceStatus.VOID
    assert voided.amount_due == Decimal("0")
    with pytest.raises(PreconditionFailedError):
        call("sales.update_invoice", {"id": str(invoice.id), "notes": "late"})


def test_quote_converts_once(call, store, customer):
    quote = call(
        "sales.create_quote",
        {
            "customer_id": str(customer.id),
            "lines": [{"description": "Widget", "quantity": "2", "unit_price": "25"}],
        },
    )

    order = call("sales.convert_quote_to_order", {"quote_id": str(quote.id)})

    assert order.quote_id == quote.id
    assert order.total == quote.total
    with store.transaction() as uow:
        assert uow.quotes.get(quote.id).status == QuoteStatus.ACCEPTED
    with pytest.raises(PreconditionFailedError):
        call("sales.convert_quote_to_order", {"quote_id": str(quote.id)})


def test_order_totals_include_discount_tax_and_shipping(call, customer):
    order = call(
        "sales.create_sales_order",
        {
            "customer_id": str(customer.id),
            "discount_percent": "10",
            "shipping_cost": "5",
            "lines": [
                {"description": "A", "quantity": "2", "unit_price": "50", "tax_rate": "10"},
            ],
        },
    )

    assert order.subtotal == Decimal("100.00")
    assert order.discount_amount == Decimal("10.00")
    assert order.tax_amount == Decimal("9.00")
    assert order.total == Decimal("104.00")


def test_status_change_emits_notification(call, store, customer, admin):
    order = call(
        "sales.create_sales_order",
        {
            "customer_id": str(customer.id),
            "lines": [{"description": "A", "quantity": "1", "unit_price": "10"}],
        },
    )
    before = len(_notifications(store, admin))

    call("sales.update_sales_order", {"id": str(order.id), "status": "confirmed"})
    # Mismo estado: sin notificación nueva.
    call("sales.update_sales_order", {"id": str(order.id), "status": "confirmed"})

    notifications = _notifications(store, admin)
    assert len(notifications) == before + 1
    confirmed = [n for n in notifications if n.title == "Sales Order Confirmed"]
    assert len(confirmed) == 1
    assert confirmed[0].link == f"/sales/orders/{order.id}"

    with store.transaction() as uow:
        assert uow.sales_orders.get(order.id).status == SalesOrderStatus.CONFIRMED
