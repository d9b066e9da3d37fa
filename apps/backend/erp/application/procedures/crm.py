"""
===============================================================================
TARJETA CRC — application/procedures/crm.py
===============================================================================

Procedimientos (permisos sales:*):
  - Casos:        get_support_cases / get_support_case / create_support_case /
                  update_support_case / add_case_comment / get_support_stats
  - Suscripciones: get_subscriptions / create_subscription /
                  cancel_subscription / get_subscription_metrics

Reglas de negocio:
  R1) resolved fija resolved_at; closed fija closed_at.
  R2) Asignar un caso notifica al usuario asignado.
  R3) MRR = Σ monthly_value de suscripciones activas; ARR = MRR * 12;
      churn = canceladas en el mes / activas * 100 (2 decimales).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import Field, model_validator

from ...crosscutting.exceptions import PreconditionFailedError
from ...domain import sequences
from ...domain.crm import (
    OPEN_CASE_STATUSES,
    CaseComment,
    CasePriority,
    CaseStatus,
    PlanType,
    Subscription,
    SubscriptionStatus,
    SupportCase,
)
from ...domain.money import HUNDRED, ZERO, money_sum, to_money
from ...domain.notifications import NotificationType
from ...domain.parties import Customer
from ...domain.permissions import Permission
from ...domain.repositories import UnitOfWork
from ..audit import record_audit
from ..notifications import emit_notification
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import allocate_and_insert
from ._common import (
    IdInput,
    Input,
    ListInput,
    UpdateInput,
    get_or_404,
    page_limit,
    present,
    touch,
)

router = ProcedureRouter("crm")


class CaseListInput(ListInput):
    status: CaseStatus | None = None
    priority: CasePriority | None = None
    assigned_to: UUID | None = None
    customer_id: UUID | None = None


class CreateCaseInput(Input):
    customer_id: UUID
    contact_id: UUID | None = None
    subject: str = Field(min_length=1, max_length=300)
    description: str | None = None
    priority: CasePriority = CasePriority.MEDIUM
    assigned_to: UUID | None = None


class UpdateCaseInput(UpdateInput):
    clearable = frozenset({"assigned_to"})

    id: UUID
    status: CaseStatus | None = None
    priority: CasePriority | None = None
    assigned_to: UUID | None = None


class AddCommentInput(Input):
    case_id: UUID
    body: str = Field(min_length=1, max_length=10000)
    is_internal: bool = False


class SubscriptionListInput(ListInput):
    status: SubscriptionStatus | None = None
    customer_id: UUID | None = None


class CreateSubscriptionInput(Input):
    customer_id: UUID
    plan_name: str = Field(min_length=1, max_length=200)
    plan_type: PlanType
    monthly_value: Decimal = Field(ge=0)
    start_date: date
    end_date: date | None = None

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class CancelSubscriptionInput(Input):
    id: UUID
    cancel_reason: str | None = Field(default=None, max_length=1000)


@dataclass(frozen=True)
class SupportCaseDetail:
    case: SupportCase
    customer: Customer | None
    comments: list[CaseComment]


@dataclass(frozen=True)
class SupportStats:
    total_cases: int
    open_cases: int
    resolved_today: int


@dataclass(frozen=True)
class SubscriptionMetrics:
    mrr: Decimal
    arr: Decimal
    active_subscriptions: int
    new_subscriptions: int
    churned_subscriptions: int
    churn_rate: Decimal


def _notify_assignee(ctx: ProcedureContext, uow: UnitOfWork, case: SupportCase) -> None:
    if case.assigned_to is None or case.assigned_to == ctx.actor.user_id:
        return
    get_or_404(uow.users, case.assigned_to, "User")
    emit_notification(
        uow,
        case.assigned_to,
        NotificationType.INFO,
        "Support Case Assigned",
        f"{case.case_number}: {case.subject}",
        f"/crm/support/{case.id}",
    )


# ---------------------------------------------------------------------------
# Casos de soporte
# ---------------------------------------------------------------------------


@router.query("get_support_cases", input=CaseListInput, permission=Permission.SALES_VIEW)
def get_support_cases(ctx: ProcedureContext, data: CaseListInput) -> list[SupportCase]:
    with ctx.store.transaction() as uow:
        return uow.support_cases.list(
            filters=present(
                status=data.status,
                priority=data.priority,
                assigned_to=data.assigned_to,
                customer_id=data.customer_id,
            ),
            search=data.search,
            search_fields=("case_number", "subject"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_support_case", input=IdInput, permission=Permission.SALES_VIEW)
def get_support_case(ctx: ProcedureContext, data: IdInput) -> SupportCaseDetail:
    with ctx.store.transaction() as uow:
        case = get_or_404(uow.support_cases, data.id, "Support case")
        return SupportCaseDetail(
            case=case,
            customer=uow.customers.get(case.customer_id),
            comments=uow.case_comments.list(
                filters={"case_id": case.id}, order_by="created_at", descending=False
            ),
        )


@router.mutation("create_support_case", input=CreateCaseInput, permission=Permission.SALES_CREATE)
def create_support_case(ctx: ProcedureContext, data: CreateCaseInput) -> SupportCase:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        customer = get_or_404(uow.customers, data.customer_id, "Customer")
        if data.contact_id is not None:
            contact = get_or_404(uow.contacts, data.contact_id, "Contact")
            if contact.customer_id != customer.id:
                raise PreconditionFailedError("Contact belongs to a different customer")
        case = allocate_and_insert(
            uow.support_cases,
            sequences.SUPPORT_CASE,
            lambda number: SupportCase(
                case_number=number, created_at=now, updated_at=now, **data.model_dump()
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "SupportCase", case.id, new=case, at=now)
        _notify_assignee(ctx, uow, case)
        return case


@router.mutation("update_support_case", input=UpdateCaseInput, permission=Permission.SALES_EDIT)
def update_support_case(ctx: ProcedureContext, data: UpdateCaseInput) -> SupportCase:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        case = get_or_404(uow.support_cases, data.id, "Support case")
        changes = data.model_dump(exclude={"id"}, exclude_unset=True)
        if data.status == CaseStatus.RESOLVED:
            changes["resolved_at"] = now
        elif data.status == CaseStatus.CLOSED:
            changes["closed_at"] = now
            changes.setdefault("resolved_at", case.resolved_at or now)
        updated = uow.support_cases.update(touch(ctx, case, **changes))
        record_audit(uow, ctx.actor, "update", "SupportCase", case.id, old=case, new=updated, at=now)
        if data.assigned_to is not None and data.assigned_to != case.assigned_to:
            _notify_assignee(ctx, uow, updated)
        return updated


@router.mutation("add_case_comment", input=AddCommentInput, permission=Permission.SALES_EDIT)
def add_case_comment(ctx: ProcedureContext, data: AddCommentInput) -> CaseComment:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        case = get_or_404(uow.support_cases, data.case_id, "Support case")
        comment = uow.case_comments.add(
            CaseComment(
                case_id=case.id,
                user_id=ctx.actor.user_id,
                body=data.body,
                is_internal=data.is_internal,
                created_at=now,
                updated_at=now,
            )
        )
        uow.support_cases.update(touch(ctx, case))
        record_audit(uow, ctx.actor, "comment", "SupportCase", case.id, new=comment, at=now)
        return comment


@router.query("get_support_stats", permission=Permission.SALES_VIEW)
def get_support_stats(ctx: ProcedureContext, data: Input) -> SupportStats:
    today = ctx.today()
    with ctx.store.transaction() as uow:
        resolved = uow.support_cases.list(
            filters={"status": [CaseStatus.RESOLVED, CaseStatus.CLOSED]}
        )
        return SupportStats(
            total_cases=uow.support_cases.count(),
            open_cases=uow.support_cases.count({"status": list(OPEN_CASE_STATUSES)}),
            resolved_today=sum(
                1 for c in resolved if c.resolved_at is not None and c.resolved_at.date() == today
            ),
        )


# ---------------------------------------------------------------------------
# Suscripciones
# ---------------------------------------------------------------------------


@router.query("get_subscriptions", input=SubscriptionListInput, permission=Permission.SALES_VIEW)
def get_subscriptions(ctx: ProcedureContext, data: SubscriptionListInput) -> list[Subscription]:
    with ctx.store.transaction() as uow:
        return uow.subscriptions.list(
            filters=present(status=data.status, customer_id=data.customer_id),
            search=data.search,
            search_fields=("subscription_number", "plan_name"),
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.mutation("create_subscription", input=CreateSubscriptionInput, permission=Permission.SALES_CREATE)
def create_subscription(ctx: ProcedureContext, data: CreateSubscriptionInput) -> Subscription:
    now = ctx.now()
    fields = data.model_dump(exclude={"monthly_value"})
    with ctx.store.transaction() as uow:
        get_or_404(uow.customers, data.customer_id, "Customer")
        subscription = allocate_and_insert(
            uow.subscriptions,
            sequences.SUBSCRIPTION,
            lambda number: Subscription(
                subscription_number=number,
                monthly_value=to_money(data.monthly_value),
                created_at=now,
                updated_at=now,
                **fields,
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "Subscription", subscription.id, new=subscription, at=now)
        return subscription


@router.mutation("cancel_subscription", input=CancelSubscriptionInput, permission=Permission.SALES_EDIT)
def cancel_subscription(ctx: ProcedureContext, data: CancelSubscriptionInput) -> Subscription:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        subscription = get_or_404(uow.subscriptions, data.id, "Subscription")
        if subscription.status == SubscriptionStatus.CANCELLED:
            raise PreconditionFailedError("Subscription is already cancelled")
        cancelled = uow.subscriptions.update(
            touch(
                ctx,
                subscription,
                status=SubscriptionStatus.CANCELLED,
                cancelled_at=now,
                cancel_reason=data.cancel_reason,
            )
        )
        record_audit(
            uow, ctx.actor, "cancel", "Subscription", subscription.id,
            old=subscription, new=cancelled, at=now,
        )
        return cancelled


@router.query("get_subscription_metrics", permission=Permission.SALES_VIEW)
def get_subscription_metrics(ctx: ProcedureContext, data: Input) -> SubscriptionMetrics:
    month_start = ctx.today().replace(day=1)
    with ctx.store.transaction() as uow:
        active = uow.subscriptions.list(filters={"status": SubscriptionStatus.ACTIVE})
        cancelled = uow.subscriptions.list(filters={"status": SubscriptionStatus.CANCELLED})

    mrr = money_sum(s.monthly_value for s in active)
    churned = sum(
        1 for s in cancelled if s.cancelled_at is not None and s.cancelled_at.date() >= month_start
    )
    churn_rate = (
        to_money(Decimal(churned) / Decimal(len(active)) * HUNDRED) if active else ZERO
    )
    return SubscriptionMetrics(
        mrr=mrr,
        arr=to_money(mrr * 12),
        active_subscriptions=len(active),
        new_subscriptions=sum(1 for s in active if s.start_date >= month_start),
        churned_subscriptions=churned,
        churn_rate=churn_rate,
    )
