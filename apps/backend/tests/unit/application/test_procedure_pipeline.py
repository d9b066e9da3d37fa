"""
Name: Procedure Pipeline Tests

Responsibilities:
  - Guard ordering: Unauthenticated before Forbidden before validation
  - Denied calls never reach the handler (no audit rows)
  - Input validation errors carry a field map
  - Registry naming and catalogue invariants
"""

from uuid import uuid4

import pytest
from pydantic import BaseModel

from erp.application.registry import (
    ProcedureContext,
    ProcedureKind,
    ProcedureRegistry,
    ProcedureRouter,
)
from erp.crosscutting.exceptions import (
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from erp.domain.permissions import Permission

pytestmark = pytest.mark.unit


def _audit_count(store) -> int:
    with store.transaction() as uow:
        return uow.audit_log.count_entries()


def test_missing_permission_is_forbidden_and_writes_nothing(call, store, principal_factory):
    viewer = principal_factory(Permission.SALES_VIEW)

    with pytest.raises(ForbiddenError) as exc_info:
        call("customers.create_customer", {"company_name": "Acme"}, principal=viewer)

    assert exc_info.value.permission == Permission.SALES_CREATE.value
    assert _audit_count(store) == 0
    with store.transaction() as uow:
        assert uow.customers.count() == 0


def test_no_principal_is_unauthenticated_before_validation(call):
    # Input inválido: igual debe fallar primero por sesión.
    with pytest.raises(UnauthenticatedError):
        call("customers.create_customer", {"company_name": ""}, principal=None)


def test_authenticated_only_procedure_rejects_anonymous(call):
    with pytest.raises(UnauthenticatedError):
        call("auth.get_unread_notification_count", principal=None)


def test_public_procedure_allows_anonymous(call):
    assert call("auth.get_session", principal=None).authenticated is False


def test_forbidden_is_checked_before_input(call, principal_factory):
    nobody = principal_factory()
    with pytest.raises(ForbiddenError):
        call("customers.create_customer", {"unknown": 1}, principal=nobody)


def test_validation_error_maps_fields(call):
    with pytest.raises(ValidationError) as exc_info:
        call("customers.create_customer", {"company_name": "", "extra": True})

    field_errors = exc_info.value.field_errors
    assert "company_name" in field_errors
    assert "extra" in field_errors


def test_read_queries_are_idempotent(call, customer):
    first = call("customers.get_customers")
    second = call("customers.get_customers")
    assert first == second == [customer]


def test_unknown_procedure_is_not_found(call):
    with pytest.raises(NotFoundError):
        call("customers.does_not_exist")


def test_router_rejects_duplicate_names():
    router = ProcedureRouter("things")

    @router.query("get_thing")
    def first(ctx, data):
        return None

    with pytest.raises(ValueError):

        @router.query("get_thing")
        def second(ctx, data):
            return None


def test_registry_rejects_duplicate_routers():
    router = ProcedureRouter("things")

    @router.mutation("make", permission=Permission.SETUP_CREATE)
    def make(ctx, data):
        return "made"

    registry = ProcedureRegistry()
    registry.include(router)
    with pytest.raises(ValueError):
        registry.include(router)


def test_handler_receives_parsed_input(store, principal_factory):
    class EchoInput(BaseModel):
        value: int

    router = ProcedureRouter("echo")

    @router.query("double", input=EchoInput, permission=Permission.REPORTS_VIEW)
    def double(ctx, data: EchoInput):
        return data.value * 2

    registry = ProcedureRegistry()
    registry.include(router)
    context = ProcedureContext(
        principal=principal_factory(Permission.REPORTS_VIEW), store=store
    )

    assert registry.call("echo.double", context, {"value": "21"}) == 42
    assert registry.get("echo.double").kind == ProcedureKind.QUERY


def test_every_gated_procedure_declares_a_catalogue_permission(registry):
    gated = [p for p in registry if p.permission is not None]
    assert gated
    assert all(isinstance(p.permission, Permission) for p in gated)


def test_catalogue_covers_all_modules(registry):
    namespaces = {name.split(".", 1)[0] for name in registry.names()}
    assert namespaces == {
        "auth",
        "customers",
        "sales",
        "purchasing",
        "inventory",
        "finance",
        "employees",
        "manufacturing",
        "crm",
        "setup",
        "reports",
    }


def test_mutations_and_queries_split(registry):
    kinds = {p.name: p.kind for p in registry}
    assert kinds["customers.get_customers"] == ProcedureKind.QUERY
    assert kinds["customers.delete_customer"] == ProcedureKind.MUTATION
    assert kinds["reports.get_ar_aging_report"] == ProcedureKind.QUERY


def test_actor_requires_principal(store):
    context = ProcedureContext(principal=None, store=store)
    with pytest.raises(UnauthenticatedError):
        _ = context.actor


def test_get_or_404_message(call):
    with pytest.raises(NotFoundError) as exc_info:
        call("customers.get_customer", {"id": str(uuid4())})
    assert exc_info.value.message == "Customer not found"
