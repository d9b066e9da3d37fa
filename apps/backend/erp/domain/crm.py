"""
===============================================================================
TARJETA CRC — domain/crm.py
===============================================================================

Módulo:
    CRM: casos de soporte, comentarios y suscripciones

Responsabilidades:
    - Definir SupportCase, CaseComment y Subscription.
    - Normalizar el valor mensual (MRR) de una suscripción.

Colaboradores:
    - application/procedures/crm.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from .records import Record


class CaseStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    RESOLVED = "resolved"
    CLOSED = "closed"


OPEN_CASE_STATUSES = frozenset(
    {CaseStatus.OPEN, CaseStatus.IN_PROGRESS, CaseStatus.WAITING}
)


class CasePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class PlanType(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True, kw_only=True)
class SupportCase(Record):
    case_number: str
    customer_id: UUID
    contact_id: UUID | None = None
    subject: str
    description: str | None = None
    priority: CasePriority = CasePriority.MEDIUM
    status: CaseStatus = CaseStatus.OPEN
    assigned_to: UUID | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    def business_key(self) -> str | None:
        return self.case_number


@dataclass(frozen=True, kw_only=True)
class CaseComment(Record):
    case_id: UUID
    user_id: UUID
    body: str
    is_internal: bool = False


@dataclass(frozen=True, kw_only=True)
class Subscription(Record):
    subscription_number: str
    customer_id: UUID
    plan_name: str
    plan_type: PlanType
    monthly_value: Decimal
    start_date: date
    end_date: date | None = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None

    def business_key(self) -> str | None:
        return self.subscription_number
