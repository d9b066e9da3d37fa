"""
===============================================================================
TARJETA CRC — domain/finance.py
===============================================================================

Módulo:
    Finanzas: plan de cuentas, asientos, activos fijos y monedas

Responsabilidades:
    - Definir Account, JournalEntry (líneas embebidas), FixedAsset,
      DepreciationEntry, Currency y ExchangeRate.
    - Declarar la máquina de estados del asiento.
    - Calcular el efecto de una línea sobre el saldo de su cuenta.
    - Calcular la depreciación mensual (lineal, tope en valor residual).
    - Clasificar días de atraso en buckets de antigüedad.

Colaboradores:
    - application/procedures/finance.py
    - application/procedures/reports.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from .money import ZERO, to_money
from .records import Record


class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"
    COGS = "cogs"


# Cuentas de saldo deudor: debit - credit. El resto: credit - debit.
DEBIT_NORMAL_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE, AccountType.COGS})


class JournalEntryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    POSTED = "posted"
    VOID = "void"


JOURNAL_TRANSITIONS: dict[JournalEntryStatus, frozenset[JournalEntryStatus]] = {
    JournalEntryStatus.PENDING: frozenset(
        {JournalEntryStatus.APPROVED, JournalEntryStatus.VOID}
    ),
    JournalEntryStatus.APPROVED: frozenset(
        {JournalEntryStatus.POSTED, JournalEntryStatus.VOID}
    ),
    JournalEntryStatus.POSTED: frozenset(),
    JournalEntryStatus.VOID: frozenset(),
}


class AssetStatus(str, Enum):
    ACTIVE = "active"
    FULLY_DEPRECIATED = "fully_depreciated"
    DISPOSED = "disposed"


@dataclass(frozen=True, kw_only=True)
class Account(Record):
    account_number: str
    name: str
    account_type: AccountType
    sub_type: str | None = None
    description: str | None = None
    parent_id: UUID | None = None
    currency_code: str = "USD"
    balance: Decimal = ZERO
    is_summary: bool = False
    is_active: bool = True

    def business_key(self) -> str | None:
        return self.account_number


@dataclass(frozen=True, kw_only=True)
class JournalLine:
    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    memo: str | None = None


@dataclass(frozen=True, kw_only=True)
class JournalEntry(Record):
    entry_number: str
    entry_date: date
    memo: str | None = None
    reference: str | None = None
    lines: tuple[JournalLine, ...] = ()
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO
    status: JournalEntryStatus = JournalEntryStatus.PENDING
    created_by: UUID | None = None
    posted_at: datetime | None = None

    def business_key(self) -> str | None:
        return self.entry_number


@dataclass(frozen=True, kw_only=True)
class FixedAsset(Record):
    asset_number: str
    name: str
    category: str | None = None
    purchase_date: date
    purchase_price: Decimal
    salvage_value: Decimal = ZERO
    useful_life_months: int
    accumulated_depreciation: Decimal = ZERO
    net_book_value: Decimal = ZERO
    status: AssetStatus = AssetStatus.ACTIVE
    account_id: UUID | None = None

    def business_key(self) -> str | None:
        return self.asset_number


@dataclass(frozen=True, kw_only=True)
class DepreciationEntry(Record):
    asset_id: UUID
    period: str  # YYYY-MM
    amount: Decimal
    accumulated_after: Decimal
    net_book_value_after: Decimal

    def business_key(self) -> str | None:
        return f"{self.asset_id}:{self.period}"


@dataclass(frozen=True, kw_only=True)
class Currency(Record):
    code: str
    name: str
    symbol: str | None = None
    is_base: bool = False
    is_active: bool = True

    def business_key(self) -> str | None:
        return self.code


@dataclass(frozen=True, kw_only=True)
class ExchangeRate(Record):
    from_currency: str
    to_currency: str
    rate: Decimal
    effective_date: date

    def business_key(self) -> str | None:
        return f"{self.from_currency}:{self.to_currency}:{self.effective_date.isoformat()}"


def balance_effect(account_type: AccountType, debit: Decimal, credit: Decimal) -> Decimal:
    """Variación de saldo que produce una línea sobre su cuenta."""
    if account_type in DEBIT_NORMAL_TYPES:
        return to_money(debit - credit)
    return to_money(credit - debit)


def monthly_depreciation(asset: FixedAsset) -> Decimal:
    """
    Cuota del período para un activo activo.

    Regla:
      - cuota = (precio - residual) / vida útil
      - nunca lleva el valor libro por debajo del residual
    """
    if asset.useful_life_months <= 0:
        return ZERO
    base = to_money((asset.purchase_price - asset.salvage_value) / asset.useful_life_months)
    remaining = asset.purchase_price - asset.accumulated_depreciation - asset.salvage_value
    return to_money(max(ZERO, min(base, remaining)))


def period_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


AGING_BUCKETS = ("current", "days_1_30", "days_31_60", "days_61_90", "over_90")


def aging_bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current"
    if days_overdue <= 30:
        return "days_1_30"
    if days_overdue <= 60:
        return "days_31_60"
    if days_overdue <= 90:
        return "days_61_90"
    return "over_90"
