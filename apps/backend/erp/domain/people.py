"""
===============================================================================
TARJETA CRC — domain/people.py
===============================================================================

Módulo:
    Nómina: empleados y solicitudes de licencia

Responsabilidades:
    - Definir Employee y TimeOffRequest.
    - Contar días hábiles (lunes a viernes, inclusivo).

Colaboradores:
    - application/procedures/employees.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from .records import Record


class EmploymentType(str, Enum):
    FULL_TIME = "full_time"
    PART_TIME = "part_time"
    CONTRACTOR = "contractor"


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    TERMINATED = "terminated"


class PayFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"


class LeaveType(str, Enum):
    VACATION = "vacation"
    SICK = "sick"
    PERSONAL = "personal"
    UNPAID = "unpaid"


class TimeOffStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True, kw_only=True)
class Employee(Record):
    employee_number: str
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    department: str | None = None
    job_title: str | None = None
    hire_date: date
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    pay_frequency: PayFrequency = PayFrequency.BIWEEKLY
    salary: Decimal | None = None
    manager_id: UUID | None = None
    user_id: UUID | None = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE

    def business_key(self) -> str | None:
        return self.employee_number

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True, kw_only=True)
class TimeOffRequest(Record):
    employee_id: UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: int
    reason: str | None = None
    status: TimeOffStatus = TimeOffStatus.PENDING
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None


def business_days_between(start: date, end: date) -> int:
    """Días hábiles (lun-vie) entre start y end, ambos inclusive."""
    if end < start:
        return 0
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days
