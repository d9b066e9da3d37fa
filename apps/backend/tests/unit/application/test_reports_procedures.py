"""
Name: Report Procedure Tests

Responsibilities:
  - AR aging buckets by days overdue
  - Balance sheet / income statement totals
  - Sales ranking by customer
"""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest

from erp.crosscutting.exceptions import ValidationError
from erp.domain.finance import AGING_BUCKETS

pytestmark = pytest.mark.unit

AS_OF = date(2024, 6, 30)


def _invoice(call, customer, due_date: date, amount: str):
    return call(
        "sales.create_invoice",
        {
            "customer_id": str(customer.id),
            "invoice_date": (due_date - timedelta(days=30)).isoformat(),
            "due_date": due_date.isoformat(),
            "lines": [{"description": "Service", "quantity": "1", "unit_price": amount}],
        },
    )


def _account(call, number, name, account_type, **extra):
    return call(
        "finance.create_account",
        {"account_number": number, "name": name, "account_type": account_type, **extra},
    )


def test_ar_aging_buckets(call, customer):
    current = _invoice(call, customer, AS_OF, "100")
    late = _invoice(call, customer, AS_OF - timedelta(days=45), "200")
    ancient = _invoice(call, customer, AS_OF - timedelta(days=120), "300")
    voided = _invoice(call, customer, AS_OF - timedelta(days=10), "999")
    call("sales.void_invoice", {"id": str(voided.id)})

    report = call("reports.get_ar_aging_report", {"as_of_date": AS_OF.isoformat()})

    assert set(report.buckets) == set(AGING_BUCKETS)
    assert [line.document.id for line in report.buckets["current"]] == [current.id]
    assert [line.document.id for line in report.buckets["days_31_60"]] == [late.id]
    assert [line.document.id for line in report.buckets["over_90"]] == [ancient.id]
    assert report.buckets["days_1_30"] == []
    assert report.buckets["over_90"][0].days_overdue == 120
    assert report.totals["days_31_60"] == Decimal("200.00")
    assert report.total_due == Decimal("600.00")


def test_ar_aging_uses_remaining_balance(call, customer):
    invoice = _invoice(call, customer, AS_OF - timedelta(days=5), "500")
    call("sales.record_payment", {"invoice_id": str(invoice.id), "amount": "150"})

    report = call("reports.get_ar_aging_report", {"as_of_date": AS_OF.isoformat()})

    assert report.totals["days_1_30"] == Decimal("350.00")


def test_balance_sheet_totals(call):
    cash = _account(call, "1000", "Cash", "asset", sub_type="bank")
    loan = _account(call, "2000", "Loan", "liability", sub_type="long_term")
    capital = _account(call, "3000", "Capital", "equity")
    _account(call, "1900", "Assets (summary)", "asset", is_summary=True)

    entry = call(
        "finance.create_journal_entry",
        {
            "lines": [
                {"account_id": str(cash.id), "debit": "1500"},
                {"account_id": str(loan.id), "credit": "500"},
                {"account_id": str(capital.id), "credit": "1000"},
            ]
        },
    )
    call("finance.update_journal_entry_status", {"id": str(entry.id), "status": "approved"})
    call("finance.update_journal_entry_status", {"id": str(entry.id), "status": "posted"})

    sheet = call("reports.get_balance_sheet", {"as_of_date": AS_OF.isoformat()})

    assert [a.account_number for a in sheet.assets] == ["1000"]
    assert sheet.total_assets == Decimal("1500.00")
    assert sheet.total_liabilities == Decimal("500.00")
    assert sheet.total_equity == Decimal("1000.00")
    assert sheet.total_liabilities_and_equity == sheet.total_assets


def test_income_statement_net_income(call, store):
    income = _account(call, "4000", "Revenue", "income")
    cogs = _account(call, "5000", "COGS", "cogs")
    expense = _account(call, "6000", "Rent", "expense")
    with store.transaction() as uow:
        for account, balance in ((income, "1000"), (cogs, "400"), (expense, "250")):
            uow.accounts.update(replace(account, balance=Decimal(balance)))

    statement = call(
        "reports.get_income_statement",
        {"start_date": "2024-01-01", "end_date": "2024-12-31"},
    )

    assert statement.gross_profit == Decimal("600.00")
    assert statement.net_income == Decimal("350.00")


def test_period_must_be_ordered(call):
    with pytest.raises(ValidationError):
        call(
            "reports.get_income_statement",
            {"start_date": "2024-12-31", "end_date": "2024-01-01"},
        )


def test_sales_by_customer_ranking(call, customer):
    other = call("customers.create_customer", {"company_name": "Globex"})
    for who, price in ((customer, "100"), (other, "300"), (customer, "50")):
        call(
            "sales.create_sales_order",
            {
                "customer_id": str(who.id),
                "order_date": "2024-03-01",
                "lines": [{"description": "A", "quantity": "1", "unit_price": price}],
            },
        )

    ranking = call(
        "reports.get_sales_by_customer",
        {"start_date": "2024-01-01", "end_date": "2024-12-31"},
    )

    assert [(r.customer.id, r.total_sales, r.order_count) for r in ranking] == [
        (other.id, Decimal("300.00"), 1),
        (customer.id, Decimal("150.00"), 2),
    ]
