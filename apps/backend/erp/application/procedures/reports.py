"""
===============================================================================
TARJETA CRC — application/procedures/reports.py
===============================================================================

Procedimientos (permiso reports:view, solo lectura):
  - get_balance_sheet / get_income_statement / get_cash_flow_statement
  - get_sales_by_customer / get_sales_by_item
  - get_ar_aging_report / get_ap_aging_report

Reglas:
  - Balance: cuentas activas y no sumarias, por tipo, con totales.
  - Resultados: ingresos - cogs = bruto; bruto - gastos = neto.
  - Flujo de caja: líneas de asientos posted del período (debe - haber),
      income/expense -> operativo; sub_type fixed_asset -> inversión;
      liability + long_term -> financiación.
      Caja inicial = Σ saldos de cuentas sub_type "bank".
  - Aging: documentos open / partially_paid por días de atraso
    (domain.finance.aging_bucket).
===============================================================================
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import Field, model_validator

from ...domain.finance import (
    AGING_BUCKETS,
    Account,
    AccountType,
    JournalEntryStatus,
    aging_bucket,
)
from ...domain.inventory import Item
from ...domain.money import ZERO, money_sum, to_money
from ...domain.parties import Customer
from ...domain.permissions import Permission
from ...domain.purchasing import VendorBill
from ...domain.sales import Invoice, InvoiceStatus, SalesOrderStatus
from ..registry import ProcedureContext, ProcedureRouter
from ._common import Input

router = ProcedureRouter("reports")

DocT = TypeVar("DocT")

_OPEN_STATUSES = [InvoiceStatus.OPEN, InvoiceStatus.PARTIALLY_PAID]


class AsOfInput(Input):
    as_of_date: date | None = None


class PeriodInput(Input):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class RankedPeriodInput(PeriodInput):
    limit: int = Field(default=20, ge=1, le=200)


class AgingInput(Input):
    as_of_date: date | None = None


@dataclass(frozen=True)
class BalanceSheet:
    as_of_date: date
    assets: list[Account]
    liabilities: list[Account]
    equity: list[Account]
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    total_liabilities_and_equity: Decimal


@dataclass(frozen=True)
class IncomeStatement:
    start_date: date
    end_date: date
    income: list[Account]
    cogs: list[Account]
    expenses: list[Account]
    total_income: Decimal
    total_cogs: Decimal
    gross_profit: Decimal
    total_expenses: Decimal
    net_income: Decimal


@dataclass(frozen=True)
class CashFlowStatement:
    start_date: date
    end_date: date
    operating: Decimal
    investing: Decimal
    financing: Decimal
    net_cash_change: Decimal
    beginning_cash: Decimal
    ending_cash: Decimal


@dataclass(frozen=True)
class CustomerSales:
    customer: Customer | None
    total_sales: Decimal
    order_count: int


@dataclass(frozen=True)
class ItemSales:
    item: Item | None
    total_amount: Decimal
    total_quantity: Decimal


@dataclass(frozen=True)
class AgingLine(Generic[DocT]):
    document: DocT
    amount_due: Decimal
    days_overdue: int


@dataclass(frozen=True)
class AgingReport(Generic[DocT]):
    as_of_date: date
    buckets: dict[str, list[AgingLine[DocT]]]
    totals: dict[str, Decimal]
    total_due: Decimal


def _ledger_accounts(ctx: ProcedureContext) -> list[Account]:
    with ctx.store.transaction() as uow:
        return uow.accounts.list(
            filters={"is_active": True, "is_summary": False},
            order_by="account_number",
            descending=False,
        )


def _of_type(accounts: list[Account], account_type: AccountType) -> list[Account]:
    return [a for a in accounts if a.account_type == account_type]


def _total(accounts: list[Account]) -> Decimal:
    return money_sum(a.balance for a in accounts)


def build_aging(documents, as_of: date) -> AgingReport:
    """Agrupa documentos con due_date / amount_due por días de atraso."""
    buckets: dict[str, list[AgingLine]] = {name: [] for name in AGING_BUCKETS}
    for doc in documents:
        days = (as_of - doc.due_date).days
        buckets[aging_bucket(days)].append(
            AgingLine(document=doc, amount_due=doc.amount_due, days_overdue=days)
        )
    totals = {name: money_sum(line.amount_due for line in lines) for name, lines in buckets.items()}
    return AgingReport(
        as_of_date=as_of,
        buckets=buckets,
        totals=totals,
        total_due=money_sum(totals.values()),
    )


@router.query("get_balance_sheet", input=AsOfInput, permission=Permission.REPORTS_VIEW)
def get_balance_sheet(ctx: ProcedureContext, data: AsOfInput) -> BalanceSheet:
    accounts = _ledger_accounts(ctx)
    assets = _of_type(accounts, AccountType.ASSET)
    liabilities = _of_type(accounts, AccountType.LIABILITY)
    equity = _of_type(accounts, AccountType.EQUITY)
    total_liabilities, total_equity = _total(liabilities), _total(equity)
    return BalanceSheet(
        as_of_date=data.as_of_date or ctx.today(),
        assets=assets,
        liabilities=liabilities,
        equity=equity,
        total_assets=_total(assets),
        total_liabilities=total_liabilities,
        total_equity=total_equity,
        total_liabilities_and_equity=to_money(total_liabilities + total_equity),
    )


@router.query("get_income_statement", input=PeriodInput, permission=Permission.REPORTS_VIEW)
def get_income_statement(ctx: ProcedureContext, data: PeriodInput) -> IncomeStatement:
    accounts = _ledger_accounts(ctx)
    income = _of_type(accounts, AccountType.INCOME)
    cogs = _of_type(accounts, AccountType.COGS)
    expenses = _of_type(accounts, AccountType.EXPENSE)
    total_income, total_cogs, total_expenses = _total(income), _total(cogs), _total(expenses)
    gross_profit = to_money(total_income - total_cogs)
    return IncomeStatement(
        start_date=data.start_date,
        end_date=data.end_date,
        income=income,
        cogs=cogs,
        expenses=expenses,
        total_income=total_income,
        total_cogs=total_cogs,
        gross_profit=gross_profit,
        total_expenses=total_expenses,
        net_income=to_money(gross_profit - total_expenses),
    )


@router.query("get_cash_flow_statement", input=PeriodInput, permission=Permission.REPORTS_VIEW)
def get_cash_flow_statement(ctx: ProcedureContext, data: PeriodInput) -> CashFlowStatement:
    flows = {"operating": ZERO, "investing": ZERO, "financing": ZERO}
    with ctx.store.transaction() as uow:
        accounts = {a.id: a for a in uow.accounts.list()}
        entries = uow.journal_entries.list(filters={"status": JournalEntryStatus.POSTED})

    for entry in entries:
        if not data.start_date <= entry.entry_date <= data.end_date:
            continue
        for line in entry.lines:
            account = accounts.get(line.account_id)
            if account is None:
                continue
            net = line.debit - line.credit
            if account.account_type in (AccountType.INCOME, AccountType.EXPENSE):
                flows["operating"] += net
            elif account.sub_type == "fixed_asset":
                flows["investing"] += net
            elif account.account_type == AccountType.LIABILITY and account.sub_type == "long_term":
                flows["financing"] += net

    beginning = money_sum(a.balance for a in accounts.values() if a.sub_type == "bank")
    net_change = to_money(sum(flows.values(), ZERO))
    return CashFlowStatement(
        start_date=data.start_date,
        end_date=data.end_date,
        operating=to_money(flows["operating"]),
        investing=to_money(flows["investing"]),
        financing=to_money(flows["financing"]),
        net_cash_change=net_change,
        beginning_cash=beginning,
        ending_cash=to_money(beginning + net_change),
    )


def _orders_in(ctx: ProcedureContext, data: PeriodInput):
    with ctx.store.transaction() as uow:
        orders = uow.sales_orders.list()
    return [
        o
        for o in orders
        if o.status != SalesOrderStatus.CANCELLED
        and data.start_date <= o.order_date <= data.end_date
    ]


@router.query("get_sales_by_customer", input=RankedPeriodInput, permission=Permission.REPORTS_VIEW)
def get_sales_by_customer(ctx: ProcedureContext, data: RankedPeriodInput) -> list[CustomerSales]:
    totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[UUID, int] = defaultdict(int)
    for order in _orders_in(ctx, data):
        totals[order.customer_id] += order.total
        counts[order.customer_id] += 1

    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)[: data.limit]
    with ctx.store.transaction() as uow:
        return [
            CustomerSales(
                customer=uow.customers.get(customer_id),
                total_sales=to_money(total),
                order_count=counts[customer_id],
            )
            for customer_id, total in ranked
        ]


@router.query("get_sales_by_item", input=RankedPeriodInput, permission=Permission.REPORTS_VIEW)
def get_sales_by_item(ctx: ProcedureContext, data: RankedPeriodInput) -> list[ItemSales]:
    amounts: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    quantities: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
    for order in _orders_in(ctx, data):
        for line in order.lines:
            if line.item_id is None:
                continue
            amounts[line.item_id] += line.amount
            quantities[line.item_id] += line.quantity

    ranked = sorted(amounts.items(), key=lambda kv: kv[1], reverse=True)[: data.limit]
    with ctx.store.transaction() as uow:
        return [
            ItemSales(
                item=uow.items.get(item_id),
                total_amount=to_money(amount),
                total_quantity=quantities[item_id],
            )
            for item_id, amount in ranked
        ]


@router.query("get_ar_aging_report", input=AgingInput, permission=Permission.REPORTS_VIEW)
def get_ar_aging_report(ctx: ProcedureContext, data: AgingInput) -> AgingReport[Invoice]:
    with ctx.store.transaction() as uow:
        invoices = uow.invoices.list(filters={"status": _OPEN_STATUSES}, order_by="due_date")
    return build_aging(invoices, data.as_of_date or ctx.today())


@router.query("get_ap_aging_report", input=AgingInput, permission=Permission.REPORTS_VIEW)
def get_ap_aging_report(ctx: ProcedureContext, data: AgingInput) -> AgingReport[VendorBill]:
    with ctx.store.transaction() as uow:
        bills = uow.vendor_bills.list(filters={"status": _OPEN_STATUSES}, order_by="due_date")
    return build_aging(bills, data.as_of_date or ctx.today())
