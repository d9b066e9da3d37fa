"""
Name: Transaction Atomicity Tests

Responsibilities:
  - A failing audit append rolls back the business write
  - A failing notification rolls back write and audit
"""

import pytest

from erp.crosscutting.exceptions import DatabaseError

pytestmark = pytest.mark.unit


def test_audit_failure_rolls_back_business_write(call, store, monkeypatch):
    def broken_append(entry):
        raise DatabaseError("audit table unavailable")

    monkeypatch.setattr(store.uow.audit_log, "append", broken_append)

    with pytest.raises(DatabaseError):
        call("customers.create_customer", {"company_name": "Acme"})

    with store.transaction() as uow:
        assert uow.customers.count() == 0


def test_notification_failure_rolls_back_write_and_audit(call, store, vendor, monkeypatch):
    def broken_add(notification):
        raise DatabaseError("notifications table unavailable")

    monkeypatch.setattr(store.uow.notifications, "add", broken_add)

    with pytest.raises(DatabaseError):
        call(
            "purchasing.create_purchase_order",
            {
                "vendor_id": str(vendor.id),
                "lines": [{"description": "Bolts", "quantity": "1", "unit_price": "1"}],
            },
        )

    with store.transaction() as uow:
        assert uow.purchase_orders.count() == 0
        assert uow.audit_log.count_entries(entity_type="PurchaseOrder") == 0
        # El proveedor creado antes sigue intacto.
        assert uow.vendors.get(vendor.id) is not None
