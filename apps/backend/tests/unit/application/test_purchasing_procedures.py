"""
Name: Purchasing Procedure Tests

Responsibilities:
  - PO lifecycle: approve -> send -> receive -> close
  - Receipt stock-in
  - Cancel preconditions
  - Receipt lines: one entry per line, never above the ordered quantity
  - Line items locked once approved; close only after receipt
"""

from decimal import Decimal

import pytest

from erp.crosscutting.exceptions import PreconditionFailedError, ValidationError
from erp.domain.purchasing import PurchaseOrderStatus

pytestmark = pytest.mark.unit


@pytest.fixture
def item(call):
    return call("inventory.create_item", {"name": "Bolt", "cost": "2.50"})


@pytest.fixture
def warehouse(call):
    return call("inventory.create_warehouse", {"code": "main", "name": "Main Warehouse"})


def _po(call, vendor, item=None, quantity="10"):
    line = {"description": "Bolts", "quantity": quantity, "unit_price": "2.50"}
    if item is not None:
        line["item_id"] = str(item.id)
    return call(
        "purchasing.create_purchase_order",
        {"vendor_id": str(vendor.id), "lines": [line]},
    )


def _notification_count(store, principal) -> int:
    with store.transaction() as uow:
        return len(uow.notifications.list_for_user(principal.user_id, limit=100))


def test_vendor_numbering_starts_at_1001(vendor):
    assert vendor.vendor_number == "VEND-1001"


def test_new_po_is_draft_with_totals(call, vendor):
    order = _po(call, vendor)

    assert order.po_number == "PO-1001"
    assert order.status == PurchaseOrderStatus.DRAFT
    assert order.total == Decimal("25.00")


def test_approve_draft_notifies_actor_once(call, store, vendor, admin):
    order = _po(call, vendor)
    before = _notification_count(store, admin)

    approved = call("purchasing.approve_purchase_order", {"id": str(order.id)})

    assert approved.status == PurchaseOrderStatus.APPROVED
    assert approved.approved_by == admin.user_id
    assert _notification_count(store, admin) == before + 1
    with store.transaction() as uow:
        entries = uow.audit_log.list_entries(action="approve", entity_type="PurchaseOrder")
    assert len(entries) == 1
    assert entries[0].old_value["status"] == "draft"
    assert entries[0].new_value["status"] == "approved"


def test_approve_sent_order_fails(call, vendor):
    order = _po(call, vendor)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})
    call("purchasing.send_purchase_order", {"id": str(order.id)})

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("purchasing.approve_purchase_order", {"id": str(order.id)})
    assert exc_info.value.message == "Only draft or pending approval orders can be approved"


def test_send_requires_approval(call, vendor):
    order = _po(call, vendor)
    with pytest.raises(PreconditionFailedError):
        call("purchasing.send_purchase_order", {"id": str(order.id)})


def test_receive_stocks_the_warehouse(call, store, vendor, item, warehouse):
    order = _po(call, vendor, item=item)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})

    receipt = call(
        "purchasing.receive_purchase_order",
        {"id": str(order.id), "warehouse_id": str(warehouse.id)},
    )

    assert receipt.purchase_order_id == order.id
    with store.transaction() as uow:
        received = uow.purchase_orders.get(order.id)
        level = uow.stock_levels.find_one(item_id=item.id, warehouse_id=warehouse.id)
        transactions = uow.inventory_transactions.list(filters={"item_id": item.id})
    assert received.status == PurchaseOrderStatus.RECEIVED
    assert received.lines[0].quantity_received == Decimal("10")
    assert level.quantity_on_hand == Decimal("10")
    assert [t.reference_id for t in transactions] == [receipt.id]


def test_receive_unknown_line_is_validation_error(call, vendor):
    order = _po(call, vendor)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})

    with pytest.raises(ValidationError) as exc_info:
        call(
            "purchasing.receive_purchase_order",
            {"id": str(order.id), "lines": [{"line_number": 3, "quantity": "1"}]},
        )
    assert "lines" in exc_info.value.field_errors


def test_cancel_after_receipt_fails(call, vendor):
    order = _po(call, vendor)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})
    call("purchasing.receive_purchase_order", {"id": str(order.id)})

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("purchasing.cancel_purchase_order", {"id": str(order.id)})
    assert "receipts" in exc_info.value.message


def test_cancel_draft(call, vendor):
    order = _po(call, vendor)
    cancelled = call("purchasing.cancel_purchase_order", {"id": str(order.id)})
    assert cancelled.status == PurchaseOrderStatus.CANCELLED


def test_delete_vendor_with_orders_fails(call, vendor):
    _po(call, vendor)
    with pytest.raises(PreconditionFailedError):
        call("purchasing.delete_vendor", {"id": str(vendor.id)})


def _receive(call, order, lines, warehouse=None):
    payload = {"id": str(order.id), "lines": lines}
    if warehouse is not None:
        payload["warehouse_id"] = str(warehouse.id)
    return call("purchasing.receive_purchase_order", payload)


def test_duplicate_receipt_line_is_rejected(call, store, vendor, item, warehouse):
    order = _po(call, vendor, item=item)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})

    with pytest.raises(ValidationError) as exc_info:
        _receive(
            call,
            order,
            [{"line_number": 1, "quantity": "4"}, {"line_number": 1, "quantity": "4"}],
            warehouse,
        )

    assert "lines" in exc_info.value.field_errors
    with store.transaction() as uow:
        assert uow.receipts.count({"purchase_order_id": order.id}) == 0
        assert uow.stock_levels.find_one(item_id=item.id, warehouse_id=warehouse.id) is None
        assert uow.purchase_orders.get(order.id).status == PurchaseOrderStatus.APPROVED


def test_receipt_above_ordered_quantity_is_rejected(call, store, vendor, item, warehouse):
    order = _po(call, vendor, item=item, quantity="10")
    call("purchasing.approve_purchase_order", {"id": str(order.id)})

    with pytest.raises(ValidationError) as exc_info:
        _receive(call, order, [{"line_number": 1, "quantity": "11"}], warehouse)

    assert exc_info.value.field_errors["lines"] == [
        "Line 1 exceeds the quantity still to receive (10)"
    ]
    with store.transaction() as uow:
        assert uow.purchase_orders.get(order.id).lines[0].quantity_received == Decimal("0")
        assert uow.stock_levels.find_one(item_id=item.id, warehouse_id=warehouse.id) is None


def test_partial_receipt_records_only_received_quantity(call, store, vendor, item, warehouse):
    order = _po(call, vendor, item=item, quantity="10")
    call("purchasing.approve_purchase_order", {"id": str(order.id)})

    _receive(call, order, [{"line_number": 1, "quantity": "4"}], warehouse)

    with store.transaction() as uow:
        received = uow.purchase_orders.get(order.id)
        level = uow.stock_levels.find_one(item_id=item.id, warehouse_id=warehouse.id)
    assert received.lines[0].quantity_received == Decimal("4")
    assert level.quantity_on_hand == Decimal("4")


def test_line_items_locked_after_approval(call, store, vendor):
    order = _po(call, vendor)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})

    with pytest.raises(PreconditionFailedError) as exc_info:
        call(
            "purchasing.update_purchase_order",
            {
                "id": str(order.id),
                "lines": [{"description": "Nuts", "quantity": "99", "unit_price": "1"}],
            },
        )

    assert exc_info.value.message == (
        "Line items can only be edited on draft or pending approval orders"
    )
    with store.transaction() as uow:
        assert uow.purchase_orders.get(order.id).total == Decimal("25.00")


def test_header_fields_editable_after_approval(call, vendor):
    order = _po(call, vendor)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})

    updated = call("purchasing.update_purchase_order", {"id": str(order.id), "notes": "Dock B"})

    assert updated.notes == "Dock B"
    assert updated.status == PurchaseOrderStatus.APPROVED


@pytest.mark.parametrize("approve", [False, True])
def test_close_requires_received_order(call, vendor, approve):
    order = _po(call, vendor)
    if approve:
        call("purchasing.approve_purchase_order", {"id": str(order.id)})

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("purchasing.close_purchase_order", {"id": str(order.id)})

    assert exc_info.value.message == "Only received orders can be closed"


def test_close_after_receipt(call, vendor):
    order = _po(call, vendor)
    call("purchasing.approve_purchase_order", {"id": str(order.id)})
    call("purchasing.receive_purchase_order", {"id": str(order.id)})

    closed = call("purchasing.close_purchase_order", {"id": str(order.id)})

    assert closed.status == PurchaseOrderStatus.CLOSED
