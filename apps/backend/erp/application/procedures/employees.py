"""
===============================================================================
TARJETA CRC — application/procedures/employees.py
===============================================================================

Procedimientos (permisos payroll:*):
  - get_employees / get_employee / create_employee / update_employee
  - get_time_off_requests / create_time_off_request /
    update_time_off_request_status

Reglas de negocio:
  R1) employee_number EMP-N (max+1); email de empleado único => Conflict.
  R2) Licencias: days = días hábiles (lun-vie) inclusive; fin >= inicio.
  R3) Estados de licencia: pending -> approved | rejected | cancelled;
      approved -> cancelled. El resto es terminal.
  R4) Revisar una licencia notifica al usuario vinculado al empleado.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import Field, model_validator

from ...crosscutting.exceptions import ConflictError, PreconditionFailedError
from ...domain import sequences
from ...domain.notifications import NotificationType
from ...domain.people import (
    Employee,
    EmployeeStatus,
    EmploymentType,
    LeaveType,
    PayFrequency,
    TimeOffRequest,
    TimeOffStatus,
    business_days_between,
)
from ...domain.permissions import Permission
from ...domain.repositories import UnitOfWork
from ..audit import record_audit
from ..notifications import emit_notification
from ..registry import ProcedureContext, ProcedureRouter
from ..sequences import allocate_and_insert
from ._common import (
    Email,
    IdInput,
    Input,
    ListInput,
    UpdateInput,
    changes_of,
    get_or_404,
    page_limit,
    present,
    touch,
)

router = ProcedureRouter("employees")

_TIME_OFF_TRANSITIONS = {
    TimeOffStatus.PENDING: frozenset(
        {TimeOffStatus.APPROVED, TimeOffStatus.REJECTED, TimeOffStatus.CANCELLED}
    ),
    TimeOffStatus.APPROVED: frozenset({TimeOffStatus.CANCELLED}),
    TimeOffStatus.REJECTED: frozenset(),
    TimeOffStatus.CANCELLED: frozenset(),
}


class EmployeeListInput(ListInput):
    department: str | None = None
    status: EmployeeStatus | None = None


class CreateEmployeeInput(Input):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: Email
    phone: str | None = Field(default=None, max_length=50)
    department: str | None = Field(default=None, max_length=100)
    job_title: str | None = Field(default=None, max_length=100)
    hire_date: date
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    pay_frequency: PayFrequency = PayFrequency.BIWEEKLY
    salary: Decimal | None = Field(default=None, ge=0)
    manager_id: UUID | None = None
    user_id: UUID | None = None


class UpdateEmployeeInput(UpdateInput):
    clearable = frozenset({"phone", "department", "job_title", "salary", "manager_id", "user_id"})

    id: UUID
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: Email | None = None
    phone: str | None = Field(default=None, max_length=50)
    department: str | None = Field(default=None, max_length=100)
    job_title: str | None = Field(default=None, max_length=100)
    employment_type: EmploymentType | None = None
    pay_frequency: PayFrequency | None = None
    salary: Decimal | None = Field(default=None, ge=0)
    manager_id: UUID | None = None
    user_id: UUID | None = None
    status: EmployeeStatus | None = None


class TimeOffListInput(ListInput):
    employee_id: UUID | None = None
    status: TimeOffStatus | None = None


class CreateTimeOffInput(Input):
    employee_id: UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class TimeOffStatusInput(Input):
    id: UUID
    status: TimeOffStatus


@dataclass(frozen=True)
class EmployeeDetail:
    employee: Employee
    manager: Employee | None
    direct_reports: list[Employee]
    time_off_requests: list[TimeOffRequest]


def _ensure_unique_email(uow: UnitOfWork, email: str, exclude: UUID | None = None) -> None:
    existing = uow.employees.find_one(email=email)
    if existing is not None and existing.id != exclude:
        raise ConflictError("An employee with this email already exists")


@router.query("get_employees", input=EmployeeListInput, permission=Permission.PAYROLL_VIEW)
def get_employees(ctx: ProcedureContext, data: EmployeeListInput) -> list[Employee]:
    with ctx.store.transaction() as uow:
        return uow.employees.list(
            filters=present(department=data.department, status=data.status),
            search=data.search,
            search_fields=("first_name", "last_name", "email", "employee_number"),
            order_by="last_name",
            descending=False,
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.query("get_employee", input=IdInput, permission=Permission.PAYROLL_VIEW)
def get_employee(ctx: ProcedureContext, data: IdInput) -> EmployeeDetail:
    with ctx.store.transaction() as uow:
        employee = get_or_404(uow.employees, data.id, "Employee")
        return EmployeeDetail(
            employee=employee,
            manager=uow.employees.get(employee.manager_id) if employee.manager_id else None,
            direct_reports=uow.employees.list(filters={"manager_id": employee.id}),
            time_off_requests=uow.time_off_requests.list(
                filters={"employee_id": employee.id}, order_by="start_date"
            ),
        )


@router.mutation("create_employee", input=CreateEmployeeInput, permission=Permission.PAYROLL_CREATE)
def create_employee(ctx: ProcedureContext, data: CreateEmployeeInput) -> Employee:
    now = ctx.now()
    fields = data.model_dump()
    with ctx.store.transaction() as uow:
        _ensure_unique_email(uow, data.email)
        if data.manager_id is not None:
            get_or_404(uow.employees, data.manager_id, "Manager")
        if data.user_id is not None:
            get_or_404(uow.users, data.user_id, "User")
        employee = allocate_and_insert(
            uow.employees,
            sequences.EMPLOYEE,
            lambda number: Employee(
                employee_number=number, created_at=now, updated_at=now, **fields
            ),
            max_attempts=ctx.settings.sequence_max_attempts,
        )
        record_audit(uow, ctx.actor, "create", "Employee", employee.id, new=employee, at=now)
        return employee


@router.mutation("update_employee", input=UpdateEmployeeInput, permission=Permission.PAYROLL_EDIT)
def update_employee(ctx: ProcedureContext, data: UpdateEmployeeInput) -> Employee:
    with ctx.store.transaction() as uow:
        employee = get_or_404(uow.employees, data.id, "Employee")
        if data.email is not None:
            _ensure_unique_email(uow, data.email, exclude=employee.id)
        if data.manager_id is not None:
            if data.manager_id == employee.id:
                raise PreconditionFailedError("An employee cannot be their own manager")
            get_or_404(uow.employees, data.manager_id, "Manager")
        updated = uow.employees.update(touch(ctx, employee, **changes_of(data)))
        record_audit(uow, ctx.actor, "update", "Employee", employee.id, old=employee, new=updated)
        return updated


@router.query("get_time_off_requests", input=TimeOffListInput, permission=Permission.PAYROLL_VIEW)
def get_time_off_requests(ctx: ProcedureContext, data: TimeOffListInput) -> list[TimeOffRequest]:
    with ctx.store.transaction() as uow:
        return uow.time_off_requests.list(
            filters=present(employee_id=data.employee_id, status=data.status),
            order_by="start_date",
            limit=page_limit(ctx, data.limit),
            offset=data.offset,
        )


@router.mutation("create_time_off_request", input=CreateTimeOffInput, permission=Permission.PAYROLL_CREATE)
def create_time_off_request(ctx: ProcedureContext, data: CreateTimeOffInput) -> TimeOffRequest:
    now = ctx.now()
    days = business_days_between(data.start_date, data.end_date)
    if days == 0:
        raise PreconditionFailedError("The requested period has no business days")

    with ctx.store.transaction() as uow:
        get_or_404(uow.employees, data.employee_id, "Employee")
        request = uow.time_off_requests.add(
            TimeOffRequest(**data.model_dump(), days=days, created_at=now, updated_at=now)
        )
        record_audit(uow, ctx.actor, "create", "TimeOffRequest", request.id, new=request, at=now)
        return request


@router.mutation(
    "update_time_off_request_status",
    input=TimeOffStatusInput,
    permission=Permission.PAYROLL_EDIT,
)
def update_time_off_request_status(ctx: ProcedureContext, data: TimeOffStatusInput) -> TimeOffRequest:
    now = ctx.now()
    with ctx.store.transaction() as uow:
        request = get_or_404(uow.time_off_requests, data.id, "Time off request")
        if data.status not in _TIME_OFF_TRANSITIONS[request.status]:
            raise PreconditionFailedError(
                f"Cannot change time off request from {request.status.value} "
                f"to {data.status.value}"
            )
        updated = uow.time_off_requests.update(
            touch(ctx, request, status=data.status, reviewed_by=ctx.actor.user_id, reviewed_at=now)
        )
        record_audit(
            uow, ctx.actor, "update", "TimeOffRequest", request.id, old=request, new=updated, at=now
        )

        employee = uow.employees.get(request.employee_id)
        if employee is not None and employee.user_id is not None:
            emit_notification(
                uow,
                employee.user_id,
                NotificationType.APPROVAL,
                f"Time Off {data.status.value.capitalize()}",
                f"Your {request.leave_type.value} request ({request.start_date.isoformat()} to "
                f"{request.end_date.isoformat()}) was {data.status.value}",
                "/employees/time-off",
                at=now,
            )
        return updated
