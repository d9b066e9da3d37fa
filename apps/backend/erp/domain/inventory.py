"""
===============================================================================
TARJETA CRC — domain/inventory.py
===============================================================================

Módulo:
    Inventario: artículos, depósitos, stock y movimientos

Responsabilidades:
    - Definir Item, Warehouse, StockLevel (artículo x depósito) e
      InventoryTransaction.
    - Aplicar un movimiento de cantidad a un StockLevel.

Colaboradores:
    - application/procedures/inventory.py
    - application/procedures/purchasing.py (recepciones con depósito)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from .money import ZERO
from .records import Address, Record


class ItemType(str, Enum):
    INVENTORY = "inventory"
    NON_INVENTORY = "non_inventory"
    SERVICE = "service"


class TransactionType(str, Enum):
    ADJUSTMENT = "adjustment"
    RECEIPT = "receipt"


@dataclass(frozen=True, kw_only=True)
class Item(Record):
    sku: str
    name: str
    description: str | None = None
    item_type: ItemType = ItemType.INVENTORY
    unit_of_measure: str = "each"
    base_price: Decimal = ZERO
    cost: Decimal = ZERO
    reorder_point: Decimal | None = None
    is_active: bool = True

    def business_key(self) -> str | None:
        return self.sku


@dataclass(frozen=True, kw_only=True)
class Warehouse(Record):
    code: str
    name: str
    address: Address | None = None
    is_active: bool = True

    def business_key(self) -> str | None:
        return self.code.upper()


@dataclass(frozen=True, kw_only=True)
class StockLevel(Record):
    item_id: UUID
    warehouse_id: UUID
    quantity_on_hand: Decimal = Decimal("0")
    quantity_available: Decimal = Decimal("0")

    def business_key(self) -> str | None:
        return f"{self.item_id}:{self.warehouse_id}"

    def apply(self, quantity: Decimal, at: datetime) -> "StockLevel":
        return replace(
            self,
            quantity_on_hand=self.quantity_on_hand + quantity,
            quantity_available=self.quantity_available + quantity,
            updated_at=at,
        )


@dataclass(frozen=True, kw_only=True)
class InventoryTransaction(Record):
    transaction_number: str
    item_id: UUID
    warehouse_id: UUID
    transaction_type: TransactionType
    quantity: Decimal
    transaction_date: date
    reason: str | None = None
    reference_id: UUID | None = None
    created_by: UUID | None = None

    def business_key(self) -> str | None:
        return self.transaction_number
