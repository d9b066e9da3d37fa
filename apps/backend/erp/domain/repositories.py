"""
===============================================================================
TARJETA CRC — domain/repositories.py
===============================================================================

Módulo:
    Puertos de persistencia (Protocols) + catálogo de tipos de registro

Responsabilidades:
    - Definir el contrato genérico RecordRepository[T].
    - Definir repositorios dedicados de auditoría y notificaciones.
    - Definir UnitOfWork (una transacción) y Store (fábrica de transacciones).
    - Declarar RECORD_KINDS: atributo del UoW -> clase de registro.

Colaboradores:
    - infrastructure/repositories/in_memory: implementación para tests/dev.
    - infrastructure/repositories/postgres: implementación productiva.
    - application/procedures/*: consumen SOLO estos contratos.

Reglas:
    - add/update levantan DuplicateKeyError si la clave de negocio ya existe.
    - Los filtros son igualdad sobre campos de primer nivel.
    - Todo lo escrito dentro de Store.transaction() se confirma junto o
      se descarta junto.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import (
    Any,
    ContextManager,
    Generic,
    Mapping,
    Protocol,
    Sequence,
    TypeVar,
)
from uuid import UUID

from .audit import AuditLogEntry
from .crm import CaseComment, SupportCase, Subscription
from .finance import (
    Account,
    Currency,
    DepreciationEntry,
    ExchangeRate,
    FixedAsset,
    JournalEntry,
)
from .inventory import InventoryTransaction, Item, StockLevel, Warehouse
from .manufacturing import BillOfMaterial, QCInspection, WorkOrder
from .notifications import Notification
from .parties import Contact, Customer, Vendor
from .people import Employee, TimeOffRequest
from .purchasing import PurchaseOrder, Receipt, VendorBill
from .records import Record
from .sales import Invoice, Payment, Quote, SalesOrder
from .setup import CustomField, Role, User

T = TypeVar("T", bound=Record)


class RecordRepository(Protocol, Generic[T]):
    """Contrato genérico de persistencia por tipo de registro."""

    def get(self, record_id: UUID) -> T | None: ...

    def find_one(self, **filters: Any) -> T | None: ...

    def list(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        search: str | None = None,
        search_fields: Sequence[str] = (),
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[T]: ...

    def count(self, filters: Mapping[str, Any] | None = None) -> int: ...

    def add(self, record: T) -> T: ...

    def update(self, record: T) -> T: ...

    def delete(self, record_id: UUID) -> None: ...

    def max_sequence(self, prefix: str) -> int | None: ...


class AuditLogRepository(Protocol):
    def append(self, entry: AuditLogEntry) -> None: ...

    def list_entries(
        self,
        *,
        user_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLogEntry]: ...

    def count_entries(
        self,
        *,
        user_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> int: ...


class NotificationRepository(Protocol):
    def add(self, notification: Notification) -> None: ...

    def get(self, notification_id: UUID) -> Notification | None: ...

    def list_for_user(
        self, user_id: UUID, *, unread_only: bool = False, limit: int = 20
    ) -> list[Notification]: ...

    def count_unread(self, user_id: UUID) -> int: ...

    def mark_read(self, notification_id: UUID, at: datetime) -> None: ...

    def mark_all_read(self, user_id: UUID, at: datetime) -> int: ...


# Atributo del UnitOfWork -> clase persistida. El nombre es también la tabla.
RECORD_KINDS: dict[str, type[Record]] = {
    "customers": Customer,
    "contacts": Contact,
    "sales_orders": SalesOrder,
    "quotes": Quote,
    "invoices": Invoice,
    "payments": Payment,
    "vendors": Vendor,
    "purchase_orders": PurchaseOrder,
    "receipts": Receipt,
    "vendor_bills": VendorBill,
    "items": Item,
    "warehouses": Warehouse,
    "stock_levels": StockLevel,
    "inventory_transactions": InventoryTransaction,
    "accounts": Account,
    "journal_entries": JournalEntry,
    "fixed_assets": FixedAsset,
    "depreciation_entries": DepreciationEntry,
    "currencies": Currency,
    "exchange_rates": ExchangeRate,
    "employees": Employee,
    "time_off_requests": TimeOffRequest,
    "boms": BillOfMaterial,
    "work_orders": WorkOrder,
    "qc_inspections": QCInspection,
    "support_cases": SupportCase,
    "case_comments": CaseComment,
    "subscriptions": Subscription,
    "users": User,
    "roles": Role,
    "custom_fields": CustomField,
}


class UnitOfWork(Protocol):
    """Vista transaccional del store: un repositorio por tipo de registro."""

    customers: RecordRepository[Customer]
    contacts: RecordRepository[Contact]
    sales_orders: RecordRepository[SalesOrder]
    quotes: RecordRepository[Quote]
    invoices: RecordRepository[Invoice]
    payments: RecordRepository[Payment]
    vendors: RecordRepository[Vendor]
    purchase_orders: RecordRepository[PurchaseOrder]
    receipts: RecordRepository[Receipt]
    vendor_bills: RecordRepository[VendorBill]
    items: RecordRepository[Item]
    warehouses: RecordRepository[Warehouse]
    stock_levels: RecordRepository[StockLevel]
    inventory_transactions: RecordRepository[InventoryTransaction]
    accounts: RecordRepository[Account]
    journal_entries: RecordRepository[JournalEntry]
    fixed_assets: RecordRepository[FixedAsset]
    depreciation_entries: RecordRepository[DepreciationEntry]
    currencies: RecordRepository[Currency]
    exchange_rates: RecordRepository[ExchangeRate]
    employees: RecordRepository[Employee]
    time_off_requests: RecordRepository[TimeOffRequest]
    boms: RecordRepository[BillOfMaterial]
    work_orders: RecordRepository[WorkOrder]
    qc_inspections: RecordRepository[QCInspection]
    support_cases: RecordRepository[SupportCase]
    case_comments: RecordRepository[CaseComment]
    subscriptions: RecordRepository[Subscription]
    users: RecordRepository[User]
    roles: RecordRepository[Role]
    custom_fields: RecordRepository[CustomField]
    audit_log: AuditLogRepository
    notifications: NotificationRepository


class Store(Protocol):
    def transaction(self) -> ContextManager[UnitOfWork]: ...
