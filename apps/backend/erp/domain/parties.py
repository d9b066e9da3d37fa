"""
===============================================================================
TARJETA CRC — domain/parties.py
===============================================================================

Módulo:
    Terceros: clientes, contactos y proveedores

Responsabilidades:
    - Definir Customer, Contact y Vendor.
    - Resolver display_name por defecto (company_name).

Colaboradores:
    - application/procedures/customers.py
    - application/procedures/purchasing.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from .records import Address, Record


@dataclass(frozen=True, kw_only=True)
class Customer(Record):
    customer_number: str
    company_name: str
    display_name: str
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    billing_address: Address | None = None
    shipping_address: Address | None = None
    credit_limit: Decimal | None = None
    payment_terms: str = "Net 30"
    tax_exempt: bool = False
    tax_id: str | None = None
    notes: str | None = None
    is_active: bool = True

    def business_key(self) -> str | None:
        return self.customer_number


@dataclass(frozen=True, kw_only=True)
class Contact(Record):
    customer_id: UUID
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    title: str | None = None
    is_primary: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True, kw_only=True)
class Vendor(Record):
    vendor_number: str
    company_name: str
    display_name: str
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    address: Address | None = None
    payment_terms: str = "Net 30"
    tax_id: str | None = None
    bank_name: str | None = None
    bank_account: str | None = None
    notes: str | None = None
    is_active: bool = True

    def business_key(self) -> str | None:
        return self.vendor_number


def default_display_name(display_name: str | None, company_name: str) -> str:
    return (display_name or "").strip() or company_name
