"""
Name: Setup Procedure Tests

Responsibilities:
  - System roles are immutable
  - Role delete preconditions and duplication
  - Users never expose password hashes
  - Audit log listing
  - Partial user updates reject nulls on required fields
"""

import pytest

from erp.crosscutting.exceptions import (
    ConflictError,
    ForbiddenError,
    PreconditionFailedError,
    ValidationError,
)
from erp.domain.permissions import Permission

pytestmark = pytest.mark.unit


@pytest.fixture
def system_role(store, seed_user):
    user = seed_user(
        email="root@example.com",
        role_name="Administrator",
        is_system=True,
        permissions=tuple(Permission),
    )
    with store.transaction() as uow:
        return uow.roles.get(user.role_id)


@pytest.fixture
def sales_role(call):
    return call(
        "setup.create_role",
        {
            "name": "Sales Rep",
            "description": "Front office",
            "permissions": [{"permission": "sales:view"}, {"permission": "sales:create"}],
        },
    )


@pytest.mark.parametrize(
    "name, payload",
    [
        ("setup.update_role", lambda role: {"id": str(role.id), "name": "Root"}),
        ("setup.delete_role", lambda role: {"id": str(role.id)}),
        (
            "setup.update_role_permissions",
            lambda role: {"role_id": str(role.id), "permissions": []},
        ),
    ],
)
def test_system_role_is_immutable(call, system_role, name, payload):
    with pytest.raises(ForbiddenError):
        call(name, payload(system_role))


def test_delete_role_with_users_fails(call, store, sales_role, seed_user):
    seed_user(email="rep@example.com", role_name="Sales Rep")

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("setup.delete_role", {"id": str(sales_role.id)})

    assert "1 assigned user" in exc_info.value.message
    with store.transaction() as uow:
        assert uow.roles.get(sales_role.id) is not None


def test_delete_unused_role(call, store, sales_role):
    assert call("setup.delete_role", {"id": str(sales_role.id)}) == {"success": True}
    with store.transaction() as uow:
        assert uow.roles.get(sales_role.id) is None


def test_duplicate_role_copies_grants(call, sales_role):
    copy = call("setup.duplicate_role", {"id": str(sales_role.id), "name": "Sales Rep 2"})

    assert copy.id != sales_role.id
    assert copy.is_system is False
    assert copy.description == "Copy of Sales Rep: Front office"
    assert copy.permissions == sales_role.permissions


def test_duplicate_role_name_is_conflict(call, sales_role):
    with pytest.raises(ConflictError):
        call("setup.create_role", {"name": "Sales Rep"})


def test_update_role_permissions_dedupes_and_audits(call, store, sales_role):
    updated = call(
        "setup.update_role_permissions",
        {
            "role_id": str(sales_role.id),
            "permissions": [
                {"permission": "reports:view"},
                {"permission": "reports:view"},
            ],
        },
    )

    assert [g.permission for g in updated.permissions] == ["reports:view"]
    with store.transaction() as uow:
        entries = uow.audit_log.list_entries(entity_type="RolePermission")
    assert len(entries) == 1
    assert entries[0].entity_id == str(sales_role.id)


def test_created_user_view_has_no_password(call, sales_role):
    user = call(
        "setup.create_user",
        {
            "email": "New.Person@Example.com",
            "name": "New Person",
            "password": "long-enough-password",
            "role_id": str(sales_role.id),
        },
    )

    assert user.email == "new.person@example.com"
    assert user.role_name == "Sales Rep"
    assert not hasattr(user, "password_hash")


def test_user_audit_snapshot_redacts_password(call, store):
    user = call(
        "setup.create_user",
        {"email": "a@example.com", "name": "A", "password": "long-enough-password"},
    )
    with store.transaction() as uow:
        entry = uow.audit_log.list_entries(entity_type="User", entity_id=str(user.id))[0]
    assert "password_hash" not in entry.new_value


def test_duplicate_user_email_is_conflict(call):
    payload = {"email": "dup@example.com", "name": "Dup", "password": "long-enough-password"}
    call("setup.create_user", payload)
    with pytest.raises(ConflictError):
        call("setup.create_user", {**payload, "email": "DUP@example.com"})


def test_audit_logs_page_filters_by_action(call, customer, sales_role):
    page = call("setup.get_audit_logs", {"action": "create", "entity_type": "Role"})

    assert page.total == 1
    assert page.items[0].entity_id == str(sales_role.id)


def test_global_search_requires_only_a_session(call, principal_factory, customer):
    results = call(
        "setup.global_search", {"query": "acme"}, principal=principal_factory()
    )
    assert [c.id for c in results.customers] == [customer.id]


def test_update_user_rejects_null_email(call, store, sales_role):
    user = call(
        "setup.create_user",
        {"email": "keep@example.com", "name": "Keep", "password": "long-enough-password"},
    )

    with pytest.raises(ValidationError) as exc_info:
        call("setup.update_user", {"id": str(user.id), "email": None})

    assert "email" in exc_info.value.field_errors
    with store.transaction() as uow:
        assert uow.users.get(user.id).email == "keep@example.com"


def test_update_user_null_role_clears_assignment(call, sales_role):
    user = call(
        "setup.create_user",
        {
            "email": "rep@example.com",
            "name": "Rep",
            "password": "long-enough-password",
            "role_id": str(sales_role.id),
        },
    )

    updated = call("setup.update_user", {"id": str(user.id), "role_id": None})

    assert updated.role_id is None
    assert updated.role_name is None
