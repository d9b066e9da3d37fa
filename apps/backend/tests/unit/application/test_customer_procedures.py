"""
Name: Customer Procedure Tests

Responsibilities:
  - Numbering (CUST max+1, explicit numbers, duplicates)
  - Delete preconditions and audit trail
  - Primary contact exclusivity
  - Explicit nulls only clear optional fields
"""

from dataclasses import FrozenInstanceError, replace

import pytest

from erp.crosscutting.exceptions import ConflictError, PreconditionFailedError, ValidationError

pytestmark = pytest.mark.unit


def _line(**overrides):
    line = {"description": "Widget", "quantity": "1", "unit_price": "10"}
    line.update(overrides)
    return line


def test_first_customer_starts_the_sequence(customer):
    assert customer.customer_number == "CUST-1001"
    assert customer.display_name == "Acme Corp"


def test_customer_number_is_max_plus_one(call, store):
    call("customers.create_customer", {"company_name": "A", "customer_number": "CUST-1041"})
    call("customers.create_customer", {"company_name": "B", "customer_number": "CUST-1007"})

    created = call("customers.create_customer", {"company_name": "C"})

    assert created.customer_number == "CUST-1042"


def test_explicit_duplicate_number_is_conflict(call, customer):
    with pytest.raises(ConflictError):
        call(
            "customers.create_customer",
            {"company_name": "Other", "customer_number": customer.customer_number},
        )


def test_delete_customer_with_orders_fails(call, store, customer):
    call(
        "sales.create_sales_order",
        {"customer_id": str(customer.id), "lines": [_line()]},
    )

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("customers.delete_customer", {"id": str(customer.id)})

    assert "archive the customer" in exc_info.value.message
    with store.transaction() as uow:
        assert uow.customers.get(customer.id) is not None


def test_delete_customer_without_documents_records_audit(call, store, customer, admin):
    call(
        "customers.create_contact",
        {"customer_id": str(customer.id), "first_name": "Ann", "last_name": "Lee"},
    )

    assert call("customers.delete_customer", {"id": str(customer.id)}) == {"success": True}

    with store.transaction() as uow:
        assert uow.customers.get(customer.id) is None
        assert uow.contacts.count({"customer_id": customer.id}) == 0
        entries = uow.audit_log.list_entries(action="delete", entity_type="Customer")
    assert len(entries) == 1
    assert entries[0].entity_id == str(customer.id)
    assert entries[0].user_id == admin.user_id
    assert entries[0].old_value["company_name"] == "Acme Corp"
    assert entries[0].new_value is None


def test_create_records_audit_snapshot(call, store, customer):
    with store.transaction() as uow:
        entries = uow.audit_log.list_entries(entity_type="Customer", action="create")
    assert [e.new_value["customer_number"] for e in entries] == ["CUST-1001"]


def test_primary_contact_is_exclusive(call, store, customer):
    first = call(
        "customers.create_contact",
        {"customer_id": str(customer.id), "first_name": "A", "last_name": "One", "is_primary": True},
    )
    second = call(
        "customers.create_contact",
        {"customer_id": str(customer.id), "first_name": "B", "last_name": "Two", "is_primary": True},
    )

    with store.transaction() as uow:
        assert uow.contacts.get(first.id).is_primary is False
        assert uow.contacts.get(second.id).is_primary is True


def test_update_customer_changes_company_name(call, customer):
    updated = call(
        "customers.update_customer",
        {"id": str(customer.id), "company_name": "Acme Holdings"},
    )
    assert updated.company_name == "Acme Holdings"
    assert updated.updated_at >= customer.updated_at


def test_search_customers_matches_name(call, customer):
    call("customers.create_customer", {"company_name": "Globex"})
    found = call("customers.search_customers", {"query": "acm"})
    assert [c.id for c in found] == [customer.id]


def test_records_are_immutable(customer):
    with pytest.raises(FrozenInstanceError):
        customer.company_name = "Mutated"  # type: ignore[misc]
    assert replace(customer, company_name="Copy").company_name == "Copy"


@pytest.mark.parametrize("field", ["company_name", "is_active"])
def test_update_customer_rejects_null_required_field(call, store, customer, field):
    with pytest.raises(ValidationError) as exc_info:
        call("customers.update_customer", {"id": str(customer.id), field: None})

    assert field in exc_info.value.field_errors
    with store.transaction() as uow:
        stored = uow.customers.get(customer.id)
    assert stored.company_name == "Acme Corp"
    assert stored.is_active is True


def test_update_customer_null_clears_optional_field(call, customer):
    call("customers.update_customer", {"id": str(customer.id), "notes": "Pays late"})

    updated = call("customers.update_customer", {"id": str(customer.id), "notes": None})

    assert updated.notes is None
    assert updated.company_name == "Acme Corp"
