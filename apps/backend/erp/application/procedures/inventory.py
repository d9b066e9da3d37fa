"""
===============================================================================
TARJETA CRC — application/procedures/inventory.py
===============================================================================

Procedimientos (permisos inventory:*):
  - Artículos: get_items / get_item / search_items / create_item /
               update_item / delete_item
  - Depósitos: get_warehouses / get_warehouse / create_warehouse /
               update_warehouse
  - Stock:     get_stock_levels / create_adjustment

Reglas de negocio:
  R1) SKU explícito o SKU-N (max+1); duplicado => Conflict.
  R2) Un artículo con stock > 0 NO se borra (se desactiva).
  R3) Código de depósito único (case-insensitive) => Conflict.
  R4) Un ajuste crea un movimiento IT-N y suma a on_hand / available
      (crea el StockLevel si no existe); nunca deja stock negativo.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from pydantic import Field, field_validator

from ...crosscutting.exceptions import PreconditionFailedError
from ...domain import sequences
from ...domain.inventory import (
    InventoryTransaction,
    Item,
    ItemType,
    StockLevel,
    TransactionType,
    Warehouse,
)
from ...domain.permissions import Permission
from ...domain.money import to_money
from ..audit import record_audit
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import allocate_and_insert, insert_with_number
from ._common import (
    AddressInput,
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

router = ProcedureRouter("inventory")

_ITEM_SEARCH_FIELDS = ("sku", "name", "description")


class ItemListInput(ListInput):
    item_type: ItemType | None = None
    is_active: bool | None = None


class SearchItemsInput(Input):
    query: str = Field(min_length=1, max_length=200)
    limit: int = Field(default=10, ge=1, le=50)


class CreateItemInput(Input):
    sku: str | None = Field(default=None, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    item_type: ItemType = ItemType.INVENTORY
    unit_of_measure: str = Field(default="each", max_length=20)
    base_price: Decimal = Field(default=Decimal("0"), ge=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    reorder_point: Decimal | None = Field(default=None, ge=0)


class UpdateItemInput(UpdateInput):
    clearable = frozenset({"description", "reorder_point"})

    id: UUID
    sku: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    item_type: ItemType | None = None
    unit_of_measure: str | None = Field(default=None, max_length=20)
    base_price: Decimal | None = Field(default=None, ge=0)
    cost: Decimal | None = Field(default=None, ge=0)
    reorder_point: Decimal | None = Field(default=None, ge=0)
    is_active: bool | None = None


class WarehouseListInput(ListInput):
    is_active: bool | None = None


class CreateWarehouseInput(Input):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    address: AddressInput | None = None


class UpdateWarehouseInput(UpdateInput):
    clearable = frozenset({"address"})

    id: UUID
    code: str | None = Field(default=None, min_length=1, max_length=20)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    address: AddressInput | None = None
    is_active: bool | None = None


class StockLevelsInput(Input):
    item_id: UUID | None = None
    warehouse_id: UUID | None = None


class AdjustmentInput(Input):
    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    reason: str = Field(min_length=1, max_length=500)

    @field_validator("quantity")
    @classmethod
    def non_zero(cls, value: Decimal) -> Decimal:
        if value == 0:
            raise ValueError("Quantity must not be zero")
        return value


@dataclass(frozen=True)
class ItemDetail:
    item: Item
    stock_levels: list[StockLevel]
    quantity_on_hand: Decimal


@dataclass(frozen=True)
class WarehouseDetail:
    warehouse: Warehouse
    stock_levels: list[StockLevel]


@dataclass(frozen=True)
class AdjustmentResult:
    transaction: InventoryTransaction
    stock_level: StockLevel


def _on_hand(levels: list[StockLevel]) -> Decimal:
    return sum((level.quantity_on_hand for level in levels), Decimal("0"))


# ---------------------------------------------------------------------------
# Artículos
# ---------------------------------------------------------------------------


@router.query("get_items", input=ItemListInput, permission=Permission.INVENTORY_VIEW)
def get_items(ctx: ProcedureContext, data: ItemListInput) -> list[Item]:
    with ctx.store.transaction() as uow:
        return uow.items.list(
            filters=present(item_type=data.item_type, is_active=data.is_active),
            search=data.search,
            search_fields=_ITEM_SEARCH_FIELDS,
            order_by="name",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_item", input=IdInput, permission=Permission.INVENTORY_VIEW)
def get_item(ctx: ProcedureContext, data: IdInput) -> ItemDetail:
    with ctx.store.transaction() as uow:
        item = get_or_404(uow.items, data.id, "Item")
        levels = uow.stock_levels.list(filters={"item_id": item.id})
        return ItemDetail(item=item, stock_levels=levels, quantity_on_hand=_on_hand(levels))


@router.query("search_items", input=SearchItemsInput, permission=Permission.INVENTORY_VIEW)
def search_items(ctx: ProcedureContext, data: SearchItemsInput) -> list[Item]:
    with ctx.store.transaction() as uow:
        return uow.items.list(
            filters={"is_active": True},
            search=data.query,
            search_fields=_ITEM_SEARCH_FIELDS,
            order_by="name",
            descending=False,
            limit=data.limit,
        )


@router.mutation("create_item", input=CreateItemInput, permission=Permission.INVENTORY_CREATE)
def create_item(ctx: ProcedureContext, data: CreateItemInput) -> Item:
    now = ctx.now()
    fields = data.model_dump(exclude={"sku", "base_price", "cost"})

    def build(sku: str) -> Item:
        return Item(
            sku=sku,
            base_price=to_money(data.base_price),
            cost=to_money(data.cost),
            created_at=now,
            updated_at=now,
            **fields,
        )

    with ctx.store.transaction() as uow:
        item = insert_with_number(
            uow.items,
            sequences.ITEM,
            build,
            explicit=data.sku,
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "Item", item.id, new=item, at=now)
        return item


@router.mutation("update_item", input=UpdateItemInput, permission=Permission.INVENTORY_EDIT)
def update_item(ctx: ProcedureContext, data: UpdateItemInput) -> Item:
    with ctx.store.transaction() as uow:
        item = get_or_404(uow.items, data.id, "Item")
        updated = update_unique(
            uow.items, touch(ctx, item, **changes_of(data)), "SKU already exists"
        )
        record_audit(uow, ctx.actor, "update", "Item", item.id, old=item, new=updated)
        return updated


@router.mutation("delete_item", input=IdInput, permission=Permission.INVENTORY_DELETE)
def delete_item(ctx: ProcedureContext, data: IdInput) -> dict:
    with ctx.store.transaction() as uow:
        item = get_or_404(uow.items, data.id, "Item")
        levels = uow.stock_levels.list(filters={"item_id": item.id})
        if _on_hand(levels) > 0:
            raise PreconditionFailedError(
                "Cannot delete item with existing stock. Deactivate instead."
            )
        for level in levels:
            uow.stock_levels.delete(level.id)
        uow.items.delete(item.id)
        record_audit(uow, ctx.actor, "delete", "Item", item.id, old=item)
    return {"success": True}


# ---------------------------------------------------------------------------
# Depósitos
# ---------------------------------------------------------------------------


@router.query("get_warehouses", input=WarehouseListInput, permission=Permission.INVENTORY_VIEW)
def get_warehouses(ctx: ProcedureContext, data: WarehouseListInput) -> list[Warehouse]:
    with ctx.store.transaction() as uow:
        return uow.warehouses.list(
            filters=present(is_active=data.is_active),
            search=data.search,
            search_fields=("code", "name"),
            order_by="code",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_warehouse", input=IdInput, permission=Permission.INVENTORY_VIEW)
def get_warehouse(ctx: ProcedureContext, data: IdInput) -> WarehouseDetail:
    with ctx.store.transaction() as uow:
        warehouse = get_or_404(uow.warehouses, data.id, "Warehouse")
        return WarehouseDetail(
            warehouse=warehouse,
            stock_levels=uow.stock_levels.list(filters={"warehouse_id": warehouse.id}),
        )


@router.mutation("create_warehouse", input=CreateWarehouseInput, permission=Permission.INVENTORY_CREATE)
def create_warehouse(ctx: ProcedureContext, data: CreateWarehouseInput) -> Warehouse:
    now = ctx.now()
    warehouse = Warehouse(
        code=data.code.upper(),
        name=data.name,
        address=data.address.to_domain() if data.address else None,
        created_at=now,
        updated_at=now,
    )
    with ctx.store.transaction() as uow:
        add_unique(uow.warehouses, warehouse, "Warehouse code already exists")
        record_audit(uow, ctx.actor, "create", "Warehouse", warehouse.id, new=warehouse, at=now)
        return warehouse


@router.mutation("update_warehouse", input=UpdateWarehouseInput, permission=Permission.INVENTORY_EDIT)
def update_warehouse(ctx: ProcedureContext, data: UpdateWarehouseInput) -> Warehouse:
    with ctx.store.transaction() as uow:
        warehouse = get_or_404(uow.warehouses, data.id, "Warehouse")
        changes = changes_of(data)
        if "code" in changes:
            changes["code"] = changes["code"].upper()
        updated = update_unique(
            uow.warehouses, touch(ctx, warehouse, **changes), "Warehouse code already exists"
        )
        record_audit(uow, ctx.actor, "update", "Warehouse", warehouse.id, old=warehouse, new=updated)
        return updated


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------


@router.query("get_stock_levels", input=StockLevelsInput, permission=Permission.INVENTORY_VIEW)
def get_stock_levels(ctx: ProcedureContext, data: StockLevelsInput) -> list[StockLevel]:
    with ctx.store.transaction() as uow:
        return uow.stock_levels.list(
            filters=present(item_id=data.item_id, warehouse_id=data.warehouse_id)
        )


@router.mutation("create_adjustment", input=AdjustmentInput, permission=Permission.INVENTORY_CREATE)
def create_adjustment(ctx: ProcedureContext, data: AdjustmentInput) -> AdjustmentResult:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        item = get_or_404(uow.items, data.item_id, "Item")
        warehouse = get_or_404(uow.warehouses, data.warehouse_id, "Warehouse")

        level = uow.stock_levels.find_one(item_id=item.id, warehouse_id=warehouse.id)
        existing = level is not None
        if level is None:
            level = StockLevel(
                item_id=item.id, warehouse_id=warehouse.id, created_at=now, updated_at=now
            )
        adjusted = level.apply(data.quantity, now)
        if adjusted.quantity_on_hand < 0:
            raise PreconditionFailedError(
                f"Adjustment would leave negative stock ({adjusted.quantity_on_hand})"
            )
        if existing:
            uow.stock_levels.update(adjusted)
        else:
            uow.stock_levels.add(adjusted)

        transaction = allocate_and_insert(
            uow.inventory_transactions,
            sequences.INVENTORY_TRANSACTION,
            lambda number: InventoryTransaction(
                transaction_number=number,
                item_id=item.id,
                warehouse_id=warehouse.id,
                transaction_type=TransactionType.ADJUSTMENT,
                quantity=data.quantity,
                transaction_date=ctx.today(),
                reason=data.reason,
                created_by=ctx.actor.user_id,
                created_at=now,
                updated_at=now,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(
            uow,
            ctx.actor,
            "create",
            "InventoryTransaction",
            transaction.id,
            old=level if existing else None,
            new=transaction,
            at=now,
        )
        return AdjustmentResult(transaction=transaction, stock_level=adjusted)
