"""
===============================================================================
TARJETA CRC — application/procedures/customers.py
===============================================================================

Procedimientos (permisos sales:*):
  - customers.get_customers / get_customer / search_customers
  - customers.create_customer / update_customer / delete_customer
  - customers.get_contacts / create_contact / update_contact / delete_contact

Reglas de negocio:
  R1) customer_number se asigna CUST-N (max+1) si no viene explícito.
  R2) display_name por defecto = company_name.
  R3) Un cliente con órdenes o facturas NO se borra (solo se desactiva).
  R4) Al borrar un cliente se borran sus contactos (misma transacción).
  R5) Marcar un contacto como primario desmarca a los demás del cliente.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from ...crosscutting.exceptions import PreconditionFailedError
from ...domain import sequences
from ...domain.parties import Contact, Customer, default_display_name
from ...domain.permissions import Permission
from ...domain.repositories import UnitOfWork
from ...domain.sales import DEFAULT_PAYMENT_TERMS
from ..audit import record_audit
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import insert_with_number
from ._common import (
    AddressInput,
    Email,
    IdInput,
    Input,
    ListInput,
    UpdateInput,
    changes_of,
    get_or_404,
    page_limit,
    touch,
    update_unique,
)

router = ProcedureRouter("customers")

_SEARCH_FIELDS = ("company_name", "display_name", "customer_number", "email")


class CustomerListInput(ListInput):
    is_active: bool | None = None


class SearchInput(Input):
    query: str = Field(min_length=1, max_length=200)
    limit: int = Field(default=10, ge=1, le=50)


class CreateCustomerInput(Input):
    customer_number: str | None = Field(default=None, max_length=50)
    company_name: str = Field(min_length=1, max_length=200)
    display_name: str | None = Field(default=None, max_length=200)
    email: Email | None = None
    phone: str | None = Field(default=None, max_length=50)
    website: str | None = Field(default=None, max_length=200)
    billing_address: AddressInput | None = None
    shipping_address: AddressInput | None = None
    credit_limit: Decimal | None = Field(default=None, ge=0)
    payment_terms: str = Field(default=DEFAULT_PAYMENT_TERMS, max_length=50)
    tax_exempt: bool = False
    tax_id: str | None = Field(default=None, max_length=50)
    notes: str | None = None


class UpdateCustomerInput(UpdateInput):
    clearable = frozenset(
        {
            "email",
            "phone",
            "website",
            "billing_address",
            "shipping_address",
            "credit_limit",
            "tax_id",
            "notes",
        }
    )

    id: UUID
    company_name: str | None = Field(default=None, min_length=1, max_length=200)
    display_name: str | None = Field(default=None, max_length=200)
    email: Email | None = None
    phone: str | None = Field(default=None, max_length=50)
    website: str | None = Field(default=None, max_length=200)
    billing_address: AddressInput | None = None
    shipping_address: AddressInput | None = None
    credit_limit: Decimal | None = Field(default=None, ge=0)
    payment_terms: str | None = Field(default=None, max_length=50)
    tax_exempt: bool | None = None
    tax_id: str | None = Field(default=None, max_length=50)
    notes: str | None = None
    is_active: bool | None = None


class ContactsInput(Input):
    customer_id: UUID


class CreateContactInput(Input):
    customer_id: UUID
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: Email | None = None
    phone: str | None = Field(default=None, max_length=50)
    title: str | None = Field(default=None, max_length=100)
    is_primary: bool = False


class UpdateContactInput(UpdateInput):
    clearable = frozenset({"email", "phone", "title"})

    id: UUID
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: Email | None = None
    phone: str | None = Field(default=None, max_length=50)
    title: str | None = Field(default=None, max_length=100)
    is_primary: bool | None = None


@dataclass(frozen=True)
class CustomerDetail:
    customer: Customer
    contacts: list[Contact]
    order_count: int
    invoice_count: int
    open_balance: Decimal


def _unset_other_primaries(
    ctx: ProcedureContext, uow: UnitOfWork, customer_id: UUID, keep: UUID | None
) -> None:
    for contact in uow.contacts.list(filters={"customer_id": customer_id, "is_primary": True}):
        if contact.id != keep:
            uow.contacts.update(touch(ctx, contact, is_primary=False))


# ---------------------------------------------------------------------------
# Clientes
# ---------------------------------------------------------------------------


@router.query("get_customers", input=CustomerListInput, permission=Permission.SALES_VIEW)
def get_customers(ctx: ProcedureContext, data: CustomerListInput) -> list[Customer]:
    filters = {} if data.is_active is None else {"is_active": data.is_active}
    with ctx.store.transaction() as uow:
        return uow.customers.list(
            filters=filters,
            search=data.search,
            search_fields=_SEARCH_FIELDS,
            order_by="company_name",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_customer", input=IdInput, permission=Permission.SALES_VIEW)
def get_customer(ctx: ProcedureContext, data: IdInput) -> CustomerDetail:
    with ctx.store.transaction() as uow:
        customer = get_or_404(uow.customers, data.id, "Customer")
        invoices = uow.invoices.list(filters={"customer_id": customer.id})
        return CustomerDetail(
            customer=customer,
            contacts=uow.contacts.list(
                filters={"customer_id": customer.id}, order_by="last_name", descending=False
            ),
            order_count=uow.sales_orders.count({"customer_id": customer.id}),
            invoice_count=len(invoices),
            open_balance=sum(
                (i.amount_due for i in invoices if i.status.value in {"open", "partially_paid"}),
                Decimal("0.00"),
            ),
        )


@router.query("search_customers", input=SearchInput, permission=Permission.SALES_VIEW)
def search_customers(ctx: ProcedureContext, data: SearchInput) -> list[Customer]:
    with ctx.store.transaction() as uow:
        return uow.customers.list(
            filters={"is_active": True},
            search=data.query,
            search_fields=_SEARCH_FIELDS,
            order_by="company_name",
            descending=False,
            limit=data.limit,
        )


@router.mutation("create_customer", input=CreateCustomerInput, permission=Permission.SALES_CREATE)
def create_customer(ctx: ProcedureContext, data: CreateCustomerInput) -> Customer:
    now = ctx.now()

    def build(number: str) -> Customer:
        return Customer(
            customer_number=number,
            company_name=data.company_name,
            display_name=default_display_name(data.display_name, data.company_name),
            email=data.email,
            phone=data.phone,
            website=data.website,
            billing_address=data.billing_address.to_domain() if data.billing_address else None,
            shipping_address=data.shipping_address.to_domain() if data.shipping_address else None,
            credit_limit=data.credit_limit,
            payment_terms=data.payment_terms,
            tax_exempt=data.tax_exempt,
            tax_id=data.tax_id,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )

    with ctx.store.transaction() as uow:
        customer = insert_with_number(
            uow.customers,
            sequences.CUSTOMER,
            build,
            explicit=data.customer_number,
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "Customer", customer.id, new=customer, at=now)
        return customer


@router.mutation("update_customer", input=UpdateCustomerInput, permission=Permission.SALES_EDIT)
def update_customer(ctx: ProcedureContext, data: UpdateCustomerInput) -> Customer:
    with ctx.store.transaction() as uow:
        customer = get_or_404(uow.customers, data.id, "Customer")
        changes = changes_of(data)
        if "display_name" in changes or "company_name" in changes:
            changes["display_name"] = default_display_name(
                changes.get("display_name", customer.display_name),
                changes.get("company_name", customer.company_name),
            )
        updated = update_unique(
            uow.customers, touch(ctx, customer, **changes), "Customer number already exists"
        )
        record_audit(uow, ctx.actor, "update", "Customer", customer.id, old=customer, new=updated)
        return updated


@router.mutation("delete_customer", input=IdInput, permission=Permission.SALES_DELETE)
def delete_customer(ctx: ProcedureContext, data: IdInput) -> dict:
    with ctx.store.transaction() as uow:
        customer = get_or_404(uow.customers, data.id, "Customer")
        has_orders = uow.sales_orders.count({"customer_id": customer.id}) > 0
        has_invoices = uow.invoices.count({"customer_id": customer.id}) > 0
        if has_orders or has_invoices:
            raise PreconditionFailedError(
                "Cannot delete customer with existing orders or invoices. "
                "Please archive the customer instead."
            )
        for contact in uow.contacts.list(filters={"customer_id": customer.id}):
            uow.contacts.delete(contact.id)
        uow.customers.delete(customer.id)
        record_audit(uow, ctx.actor, "delete", "Customer", customer.id, old=customer)
    return {"success": True}


# ---------------------------------------------------------------------------
# Contactos
# ---------------------------------------------------------------------------


@router.query("get_contacts", input=ContactsInput, permission=Permission.SALES_VIEW)
def get_contacts(ctx: ProcedureContext, data: ContactsInput) -> list[Contact]:
    with ctx.store.transaction() as uow:
        get_or_404(uow.customers, data.customer_id, "Customer")
        return uow.contacts.list(
            filters={"customer_id": data.customer_id}, order_by="last_name", descending=False
        )


@router.mutation("create_contact", input=CreateContactInput, permission=Permission.SALES_CREATE)
def create_contact(ctx: ProcedureContext, data: CreateContactInput) -> Contact:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        get_or_404(uow.customers, data.customer_id, "Customer")
        contact = Contact(**data.model_dump(), created_at=now, updated_at=now)
        if contact.is_primary:
            _unset_other_primaries(ctx, uow, data.customer_id, keep=contact.id)
        uow.contacts.add(contact)
        record_audit(uow, ctx.actor, "create", "Contact", contact.id, new=contact, at=now)
        return contact


@router.mutation("update_contact", input=UpdateContactInput, permission=Permission.SALES_EDIT)
def update_contact(ctx: ProcedureContext, data: UpdateContactInput) -> Contact:
    with ctx.store.transaction() as uow:
        contact = get_or_404(uow.contacts, data.id, "Contact")
        updated = touch(ctx, contact, **changes_of(data))
        if updated.is_primary and not contact.is_primary:
            _unset_other_primaries(ctx, uow, contact.customer_id, keep=contact.id)
        uow.contacts.update(updated)
        record_audit(uow, ctx.actor, "update", "Contact", contact.id, old=contact, new=updated)
        return updated


@router.mutation("delete_contact", input=IdInput, permission=Permission.SALES_DELETE)
def delete_contact(ctx: ProcedureContext, data: IdInput) -> dict:
    with ctx.store.transaction() as uow:
        contact = get_or_404(uow.contacts, data.id, "Contact")
        uow.contacts.delete(contact.id)
        record_audit(uow, ctx.actor, "delete", "Contact", contact.id, old=contact)
    return {"success": True}
