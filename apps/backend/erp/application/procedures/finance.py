"""
===============================================================================
TARJETA CRC — application/procedures/finance.py
===============================================================================

Procedimientos (permisos finance:*):
  - Monedas:          get_currencies / update_exchange_rate
  - Cuentas:          get_accounts / get_account / create_account / update_account
  - Asientos:         get_journal_entries / get_journal_entry /
                      create_journal_entry / update_journal_entry_status
  - Activos fijos:    get_fixed_assets / create_fixed_asset / run_depreciation

Reglas de negocio:
  R1) Número de cuenta único => Conflict; saldo inicial 0.
  R2) Asiento: >= 2 líneas y |Σdebe - Σhaber| <= epsilon (settings).
  R3) Estados del asiento según JOURNAL_TRANSITIONS; al pasar a posted se
      aplican las líneas a los saldos (domain.finance.balance_effect).
  R4) Depreciación mensual: una sola por activo y período; el valor libro
      nunca baja del residual.
  R5) update_exchange_rate hace upsert por (desde, hacia, fecha).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import Field, model_validator

from ...crosscutting.exceptions import PreconditionFailedError
from ...crosscutting.logger import logger
from ...domain import sequences
from ...domain.finance import (
    JOURNAL_TRANSITIONS,
    Account,
    AccountType,
    AssetStatus,
    Currency,
    DepreciationEntry,
    ExchangeRate,
    FixedAsset,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    balance_effect,
    monthly_depreciation,
    period_of,
)
from ...domain.money import ZERO, is_balanced, money_sum, to_money
from ...domain.permissions import Permission
from ...domain.repositories import UnitOfWork
from ..audit import record_audit
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import allocate_and_insert
from ._common import (
    IdInput,
    Input,
    ListInput,
    UpdateInput,
    add_unique,
    changes_of,
    get_or_404,
    page_limit,
    present,
    touch,
    update_unique,
)

router = ProcedureRouter("finance")

_STATUS_ACTIONS = {
    JournalEntryStatus.APPROVED: "approve",
    JournalEntryStatus.POSTED: "post",
    JournalEntryStatus.VOID: "void",
}


class ExchangeRateInput(Input):
    from_currency: str = Field(min_length=3, max_length=3)
    to_currency: str = Field(min_length=3, max_length=3)
    rate: Decimal = Field(gt=0)
    effective_date: date | None = None


class AccountListInput(ListInput):
    account_type: AccountType | None = None
    is_active: bool | None = None


class CreateAccountInput(Input):
    account_number: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    account_type: AccountType
    sub_type: str | None = Field(default=None, max_length=50)
    description: str | None = None
    parent_id: UUID | None = None
    currency_code: str = Field(default="USD", min_length=3, max_length=3)
    is_summary: bool = False


class UpdateAccountInput(UpdateInput):
    clearable = frozenset({"sub_type", "description", "parent_id"})

    id: UUID
    account_number: str | None = Field(default=None, min_length=1, max_length=20)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    sub_type: str | None = Field(default=None, max_length=50)
    description: str | None = None
    parent_id: UUID | None = None
    is_summary: bool | None = None
    is_active: bool | None = None


class JournalLineInput(Input):
    account_id: UUID
    debit: Decimal = Field(default=Decimal("0"), ge=0)
    credit: Decimal = Field(default=Decimal("0"), ge=0)
    memo: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def one_side(self):
        if self.debit == 0 and self.credit == 0:
            raise ValueError("Each line needs a debit or a credit amount")
        return self


class JournalListInput(ListInput):
    status: JournalEntryStatus | None = None
    date_from: date | None = None
    date_to: date | None = None


class CreateJournalEntryInput(Input):
    entry_date: date | None = None
    memo: str | None = Field(default=None, max_length=500)
    reference: str | None = Field(default=None, max_length=100)
    lines: list[JournalLineInput] = Field(min_length=2)


class JournalStatusInput(Input):
    id: UUID
    status: JournalEntryStatus


class AssetListInput(ListInput):
    status: AssetStatus | None = None


class CreateFixedAssetInput(Input):
    name: str = Field(min_length=1, max_length=200)
    category: str | None = Field(default=None, max_length=100)
    purchase_date: date
    purchase_price: Decimal = Field(gt=0)
    salvage_value: Decimal = Field(default=Decimal("0"), ge=0)
    useful_life_months: int = Field(ge=1, le=1200)
    account_id: UUID | None = None

    @model_validator(mode="after")
    def salvage_below_price(self):
        if self.salvage_value > self.purchase_price:
            raise ValueError("Salvage value cannot exceed purchase price")
        return self


class RunDepreciationInput(Input):
    period: str | None = Field(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class CurrencyOverview:
    currencies: list[Currency]
    exchange_rates: list[ExchangeRate]


@dataclass(frozen=True)
class AccountDetail:
    account: Account
    children: list[Account]


@dataclass(frozen=True)
class JournalEntryDetail:
    entry: JournalEntry
    accounts: dict[str, Account] = field(default_factory=dict)


@dataclass(frozen=True)
class DepreciationRun:
    period: str
    entries: list[DepreciationEntry]
    total: Decimal
    skipped: int


# ---------------------------------------------------------------------------
# Monedas
# ---------------------------------------------------------------------------


@router.query("get_currencies", permission=Permission.FINANCE_VIEW)
def get_currencies(ctx: ProcedureContext, data: Input) -> CurrencyOverview:
    with ctx.store.transaction() as uow:
        return CurrencyOverview(
            currencies=uow.currencies.list(order_by="code", descending=False),
            exchange_rates=uow.exchange_rates.list(order_by="effective_date"),
        )


@router.mutation("update_exchange_rate", input=ExchangeRateInput, permission=Permission.FINANCE_EDIT)
def update_exchange_rate(ctx: ProcedureContext, data: ExchangeRateInput) -> ExchangeRate:
    now = ctx.now()
    from_code, to_code = data.from_currency.upper(), data.to_currency.upper()
    effective = data.effective_date or ctx.today()

    with ctx.store.transaction() as uow:
        for code in (from_code, to_code):
            if uow.currencies.find_one(code=code) is None:
                raise PreconditionFailedError(f"Unknown currency: {code}")

        existing = uow.exchange_rates.find_one(
            from_currency=from_code, to_currency=to_code, effective_date=effective
        )
        if existing is None:
            rate = uow.exchange_rates.add(
                ExchangeRate(
                    from_currency=from_code,
                    to_currency=to_code,
                    rate=data.rate,
                    effective_date=effective,
                    created_at=now,
                    updated_at=now,
                )
            )
            record_audit(uow, ctx.actor, "create", "ExchangeRate", rate.id, new=rate, at=now)
        else:
            rate = uow.exchange_rates.update(touch(ctx, existing, rate=data.rate))
            record_audit(uow, ctx.actor, "update", "ExchangeRate", rate.id, old=existing, new=rate, at=now)
        return rate


# ---------------------------------------------------------------------------
# Cuentas
# ---------------------------------------------------------------------------


@router.query("get_accounts", input=AccountListInput, permission=Permission.FINANCE_VIEW)
def get_accounts(ctx: ProcedureContext, data: AccountListInput) -> list[Account]:
    with ctx.store.transaction() as uow:
        return uow.accounts.list(
            filters=present(account_type=data.account_type, is_active=data.is_active),
            search=data.search,
            search_fields=("account_number", "name"),
            order_by="account_number",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_account", input=IdInput, permission=Permission.FINANCE_VIEW)
def get_account(ctx: ProcedureContext, data: IdInput) -> AccountDetail:
    with ctx.store.transaction() as uow:
        account = get_or_404(uow.accounts, data.id, "Account")
        return AccountDetail(
            account=account,
            children=uow.accounts.list(
                filters={"parent_id": account.id}, order_by="account_number", descending=False
            ),
        )


@router.mutation("create_account", input=CreateAccountInput, permission=Permission.FINANCE_CREATE)
def create_account(ctx: ProcedureContext, data: CreateAccountInput) -> Account:
    now = ctx.now()
    account = Account(
        **data.model_dump(exclude={"currency_code"}),
        currency_code=data.currency_code.upper(),
        balance=ZERO,
        created_at=now,
        updated_at=now,
    )
    with ctx.store.transaction() as uow:
        if data.parent_id is not None:
            get_or_404(uow.accounts, data.parent_id, "Parent account")
        add_unique(uow.accounts, account, "Account number already exists")
        record_audit(uow, ctx.actor, "create", "Account", account.id, new=account, at=now)
        return account


@router.mutation("update_account", input=UpdateAccountInput, permission=Permission.FINANCE_EDIT)
def update_account(ctx: ProcedureContext, data: UpdateAccountInput) -> Account:
    with ctx.store.transaction() as uow:
        account = get_or_404(uow.accounts, data.id, "Account")
        if data.parent_id is not None:
            if data.parent_id == account.id:
                raise PreconditionFailedError("An account cannot be its own parent")
            get_or_404(uow.accounts, data.parent_id, "Parent account")
        updated = update_unique(
            uow.accounts, touch(ctx, account, **changes_of(data)), "Account number already exists"
        )
        record_audit(uow, ctx.actor, "update", "Account", account.id, old=account, new=updated)
        return updated


# ---------------------------------------------------------------------------
# Asientos contables
# ---------------------------------------------------------------------------


@router.query("get_journal_entries", input=JournalListInput, permission=Permission.FINANCE_VIEW)
def get_journal_entries(ctx: ProcedureContext, data: JournalListInput) -> list[JournalEntry]:
    with ctx.store.transaction() as uow:
        entries = uow.journal_entries.list(
            filters=present(status=data.status),
            search=data.search,
            search_fields=("entry_number", "memo", "reference"),
            order_by="entry_date",
        )
    if data.date_from is not None:
        entries = [e for e in entries if e.entry_date >= data.date_from]
    if data.date_to is not None:
        entries = [e for e in entries if e.entry_date <= data.date_to]
    limit = page_limit(ctx, data.limit)
    return entries[data.offset : data.offset + limit]


@router.query("get_journal_entry", input=IdInput, permission=Permission.FINANCE_VIEW)
def get_journal_entry(ctx: ProcedureContext, data: IdInput) -> JournalEntryDetail:
    with ctx.store.transaction() as uow:
        entry = get_or_404(uow.journal_entries, data.id, "Journal entry")
        accounts = {}
        for line in entry.lines:
            account = uow.accounts.get(line.account_id)
            if account is not None:
                accounts[str(account.id)] = account
        return JournalEntryDetail(entry=entry, accounts=accounts)


@router.mutation("create_journal_entry", input=CreateJournalEntryInput, permission=Permission.FINANCE_CREATE)
def create_journal_entry(ctx: ProcedureContext, data: CreateJournalEntryInput) -> JournalEntry:
    now = ctx.now()
    lines = tuple(
        JournalLine(
            account_id=line.account_id,
            debit=to_money(line.debit),
            credit=to_money(line.credit),
            memo=line.memo,
        )
        for line in data.lines
    )
    total_debit = money_sum(line.debit for line in lines)
    total_credit = money_sum(line.credit for line in lines)
    if not is_balanced(total_debit, total_credit, ctx.settings.money_epsilon):
        raise PreconditionFailedError("Total debits must equal total credits")

    with ctx.store.transaction() as uow:
        for line in lines:
            get_or_404(uow.accounts, line.account_id, "Account")
        entry = allocate_and_insert(
            uow.journal_entries,
            sequences.JOURNAL_ENTRY,
            lambda number: JournalEntry(
                entry_number=number,
                entry_date=data.entry_date or ctx.today(),
                memo=data.memo,
                reference=data.reference,
                lines=lines,
                total_debit=total_debit,
                total_credit=total_credit,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "JournalEntry", entry.id, new=entry, at=now)
        return entry


def _post(ctx: ProcedureContext, uow: UnitOfWork, entry: JournalEntry) -> None:
    for line in entry.lines:
        account = get_or_404(uow.accounts, line.account_id, "Account")
        effect = balance_effect(account.account_type, line.debit, line.credit)
        uow.accounts.update(touch(ctx, account, balance=to_money(account.balance + effect)))


@router.mutation("update_journal_entry_status", input=JournalStatusInput, permission=Permission.FINANCE_EDIT)
def update_journal_entry_status(ctx: ProcedureContext, data: JournalStatusInput) -> JournalEntry:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        entry = get_or_404(uow.journal_entries, data.id, "Journal entry")
        if data.status not in JOURNAL_TRANSITIONS[entry.status]:
            raise PreconditionFailedError(
                f"Cannot change journal entry status from {entry.status.value} "
                f"to {data.status.value}"
            )
        changes = {"status": data.status}
        if data.status == JournalEntryStatus.POSTED:
            _post(ctx, uow, entry)
            changes["posted_at"] = now
        updated = uow.journal_entries.update(touch(ctx, entry, **changes))
        record_audit(
            uow,
            ctx.actor,
            _STATUS_ACTIONS[data.status],
            "JournalEntry",
            entry.id,
            old=entry,
            new=updated,
            at=now,
        )
        return updated


# ---------------------------------------------------------------------------
# Activos fijos
# ---------------------------------------------------------------------------


@router.query("get_fixed_assets", input=AssetListInput, permission=Permission.FINANCE_VIEW)
def get_fixed_assets(ctx: ProcedureContext, data: AssetListInput) -> list[FixedAsset]:
    with ctx.store.transaction() as uow:
        return uow.fixed_assets.list(
            filters=present(status=data.status),
            search=data.search,
            search_fields=("asset_number", "name", "category"),
            order_by="asset_number",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.mutation("create_fixed_asset", input=CreateFixedAssetInput, permission=Permission.FINANCE_CREATE)
def create_fixed_asset(ctx: ProcedureContext, data: CreateFixedAssetInput) -> FixedAsset:
    now = ctx.now()
    price = to_money(data.purchase_price)
    with ctx.store.transaction() as uow:
        if data.account_id is not None:
            get_or_404(uow.accounts, data.account_id, "Account")
        asset = allocate_and_insert(
            uow.fixed_assets,
            sequences.FIXED_ASSET,
            lambda number: FixedAsset(
                asset_number=number,
                name=data.name,
                category=data.category,
                purchase_date=data.purchase_date,
                purchase_price=price,
                salvage_value=to_money(data.salvage_value),
                useful_life_months=data.useful_life_months,
                accumulated_depreciation=ZERO,
                net_book_value=price,
                account_id=data.account_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "FixedAsset", asset.id, new=asset, at=now)
        return asset


@router.mutation("run_depreciation", input=RunDepreciationInput, permission=Permission.FINANCE_EDIT)
def run_depreciation(ctx: ProcedureContext, data: RunDepreciationInput) -> DepreciationRun:
    """Deprecia todos los activos activos para el período (YYYY-MM)."""
    now = ctx.now()
    period = data.period or period_of(ctx.today())
    entries: list[DepreciationEntry] = []
    skipped = 0

    with ctx.store.transaction() as uow:
        for asset in uow.fixed_assets.list(filters={"status": AssetStatus.ACTIVE}):
            if uow.depreciation_entries.find_one(asset_id=asset.id, period=period) is not None:
                skipped += 1
                continue
            amount = monthly_depreciation(asset)
            if amount <= ZERO:
                skipped += 1
                continue

            accumulated = to_money(asset.accumulated_depreciation + amount)
            net_book = to_money(asset.purchase_price - accumulated)
            status = (
                AssetStatus.FULLY_DEPRECIATED
                if net_book <= asset.salvage_value
                else AssetStatus.ACTIVE
            )
            entry = uow.depreciation_entries.add(
                DepreciationEntry(
                    asset_id=asset.id,
                    period=period,
                    amount=amount,
                    accumulated_after=accumulated,
                    net_book_value_after=net_book,
                    created_at=now,
                    updated_at=now,
                )
            )
            updated = uow.fixed_assets.update(
                touch(
                    ctx,
                    asset,
                    accumulated_depreciation=accumulated,
                    net_book_value=net_book,
                    status=status,
                )
            )
            record_audit(uow, ctx.actor, "depreciate", "FixedAsset", asset.id, old=asset, new=updated, at=now)
            entries.append(entry)

    total = money_sum(entry.amount for entry in entries)
    logger.info(
        "Depreciation run completed",
        extra={"period": period, "assets": len(entries), "skipped": skipped},
    )
    return DepreciationRun(period=period, entries=entries, total=total, skipped=skipped)
