"""
Name: Finance Procedure Tests

Responsibilities:
  - Journal entries must balance
  - Posting moves account balances by normal side
  - Depreciation runs once per asset and period
"""

from datetime import date
from decimal import Decimal

import pytest

from erp.crosscutting.exceptions import (
    ConflictError,
    PreconditionFailedError,
    ValidationError,
)
from erp.domain.finance import AssetStatus, JournalEntryStatus

pytestmark = pytest.mark.unit


@pytest.fixture
def cash(call):
    return call(
        "finance.create_account",
        {"account_number": "1000", "name": "Cash", "account_type": "asset"},
    )


@pytest.fixture
def revenue(call):
    return call(
        "finance.create_account",
        {"account_number": "4000", "name": "Revenue", "account_type": "income"},
    )


def _entry(call, debit_account, credit_account, debit="100", credit="100"):
    return call(
        "finance.create_journal_entry",
        {
            "memo": "Cash sale",
            "lines": [
                {"account_id": str(debit_account.id), "debit": debit},
                {"account_id": str(credit_account.id), "credit": credit},
            ],
        },
    )


def test_balanced_entry_is_created_pending(call, cash, revenue):
    entry = _entry(call, cash, revenue)

    assert entry.entry_number == "JE-10001"
    assert entry.status == JournalEntryStatus.PENDING
    assert entry.total_debit == entry.total_credit == Decimal("100.00")


def test_unbalanced_entry_is_rejected(call, store, cash, revenue):
    with pytest.raises(PreconditionFailedError) as exc_info:
        _entry(call, cash, revenue, debit="100", credit="99")

    assert exc_info.value.message == "Total debits must equal total credits"
    with store.transaction() as uow:
        assert uow.journal_entries.count() == 0


def test_line_without_amount_is_validation_error(call, cash, revenue):
    with pytest.raises(ValidationError):
        call(
            "finance.create_journal_entry",
            {
                "lines": [
                    {"account_id": str(cash.id)},
                    {"account_id": str(revenue.id), "credit": "10"},
                ]
            },
        )


def test_posting_updates_balances(call, store, cash, revenue):
    entry = _entry(call, cash, revenue)

    with pytest.raises(PreconditionFailedError):
        # pending -> posted no es una transición válida
        call("finance.update_journal_entry_status", {"id": str(entry.id), "status": "posted"})

    call("finance.update_journal_entry_status", {"id": str(entry.id), "status": "approved"})
    posted = call(
        "finance.update_journal_entry_status", {"id": str(entry.id), "status": "posted"}
    )

    assert posted.status == JournalEntryStatus.POSTED
    assert posted.posted_at is not None
    with store.transaction() as uow:
        assert uow.accounts.get(cash.id).balance == Decimal("100.00")
        assert uow.accounts.get(revenue.id).balance == Decimal("100.00")
        actions = [e.action for e in uow.audit_log.list_entries(entity_type="JournalEntry")]
    assert sorted(actions) == ["approve", "create", "post"]


def test_duplicate_account_number_is_conflict(call, cash):
    with pytest.raises(ConflictError):
        call(
            "finance.create_account",
            {"account_number": "1000", "name": "Petty cash", "account_type": "asset"},
        )


def test_depreciation_runs_once_per_period(call, store):
    asset = call(
        "finance.create_fixed_asset",
        {
            "name": "Forklift",
            "purchase_date": date(2024, 1, 15).isoformat(),
            "purchase_price": "12000",
            "salvage_value": "0",
            "useful_life_months": 60,
        },
    )
    assert asset.asset_number == "FA-1001"

    first = call("finance.run_depreciation", {"period": "2024-02"})
    second = call("finance.run_depreciation", {"period": "2024-02"})

    assert first.total == Decimal("200.00")
    assert len(first.entries) == 1
    assert second.entries == []
    assert second.skipped == 1
    with store.transaction() as uow:
        stored = uow.fixed_assets.get(asset.id)
    assert stored.accumulated_depreciation == Decimal("200.00")
    assert stored.net_book_value == Decimal("11800.00")
    assert stored.status == AssetStatus.ACTIVE


def test_salvage_cannot_exceed_price(call):
    with pytest.raises(ValidationError):
        call(
            "finance.create_fixed_asset",
            {
                "name": "Laptop",
                "purchase_date": "2024-01-01",
                "purchase_price": "1000",
                "salvage_value": "1500",
                "useful_life_months": 36,
            },
        )
