"""
Name: Employee / Time Off Procedure Tests

Responsibilities:
  - Employee numbering, email uniqueness, manager rules
  - Time off: business-day count and status transitions
  - Reviewer decision notifies the employee's linked user
"""

from decimal import Decimal

import pytest

from erp.crosscutting.exceptions import ConflictError, PreconditionFailedError, ValidationError
from erp.domain.people import TimeOffStatus

pytestmark = pytest.mark.unit


def _employee(call, email="ana@example.com", **extra):
    payload = {
        "first_name": "Ana",
        "last_name": "Lopez",
        "email": email,
        "hire_date": "2023-03-01",
        "salary": "52000",
    }
    payload.update(extra)
    return call("employees.create_employee", payload)


def _time_off(call, employee, start="2024-01-01", end="2024-01-05"):
    return call(
        "employees.create_time_off_request",
        {
            "employee_id": str(employee.id),
            "leave_type": "vacation",
            "start_date": start,
            "end_date": end,
        },
    )


def test_employee_numbering_starts_at_1001(call):
    employee = _employee(call)
    assert employee.employee_number == "EMP-1001"
    assert employee.salary == Decimal("52000")


def test_duplicate_employee_email_is_conflict(call):
    _employee(call)
    with pytest.raises(ConflictError):
        _employee(call)


def test_employee_cannot_manage_themselves(call):
    employee = _employee(call)
    with pytest.raises(PreconditionFailedError):
        call("employees.update_employee", {"id": str(employee.id), "manager_id": str(employee.id)})


def test_employee_detail_lists_direct_reports(call):
    boss = _employee(call, email="boss@example.com", first_name="Bea")
    report = _employee(call, manager_id=str(boss.id))

    detail = call("employees.get_employee", {"id": str(boss.id)})

    assert [e.id for e in detail.direct_reports] == [report.id]
    assert detail.manager is None


def test_time_off_counts_business_days(call):
    request = _time_off(call, _employee(call), start="2024-01-05", end="2024-01-08")

    assert request.days == 2
    assert request.status == TimeOffStatus.PENDING


def test_weekend_only_time_off_is_rejected(call):
    with pytest.raises(PreconditionFailedError):
        _time_off(call, _employee(call), start="2024-01-06", end="2024-01-07")


def test_time_off_end_before_start_is_invalid(call):
    with pytest.raises(ValidationError):
        _time_off(call, _employee(call), start="2024-01-05", end="2024-01-01")


def test_approval_notifies_linked_user(call, store, seed_user):
    user = seed_user(email="ana@example.com")
    request = _time_off(call, _employee(call, user_id=str(user.id)))

    approved = call(
        "employees.update_time_off_request_status",
        {"id": str(request.id), "status": "approved"},
    )

    assert approved.status == TimeOffStatus.APPROVED
    assert approved.reviewed_at is not None
    with store.transaction() as uow:
        inbox = uow.notifications.list_for_user(user.id)
    assert [n.title for n in inbox] == ["Time Off Approved"]


@pytest.mark.parametrize(
    "first, second",
    [("rejected", "approved"), ("cancelled", "approved"), ("approved", "rejected")],
)
def test_invalid_time_off_transitions(call, first, second):
    request = _time_off(call, _employee(call))
    call("employees.update_time_off_request_status", {"id": str(request.id), "status": first})

    with pytest.raises(PreconditionFailedError) as exc_info:
        call("employees.update_time_off_request_status", {"id": str(request.id), "status": second})

    assert exc_info.value.message == f"Cannot change time off request from {first} to {second}"
