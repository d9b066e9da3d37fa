"""
Name: Manufacturing Procedure Tests

Responsibilities:
  - BOM creation and component validation
  - Work order status only moves forward; completion stamps dates
  - QC inspection status derived from counts
"""

from decimal import Decimal

import pytest

from erp.crosscutting.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from erp.domain.manufacturing import QCStatus, WorkOrderStatus

pytestmark = pytest.mark.unit


@pytest.fixture
def assembly(call):
    return call("inventory.create_item", {"name": "Table"})


@pytest.fixture
def leg(call):
    return call("inventory.create_item", {"name": "Leg"})


@pytest.fixture
def bom(call, assembly, leg):
    return call(
        "manufacturing.create_bom",
        {
            "name": "Table v1",
            "assembly_item_id": str(assembly.id),
            "components": [{"item_id": str(leg.id), "quantity": "4"}],
        },
    )


@pytest.fixture
def work_order(call, bom):
    return call(
        "manufacturing.create_work_order",
        {"bom_id": str(bom.id), "planned_quantity": "10"},
    )


def _move(call, work_order, status, **extra):
    return call(
        "manufacturing.update_work_order_status",
        {"id": str(work_order.id), "status": status, **extra},
    )


def test_bom_numbering_and_components(call, bom, leg):
    assert bom.bom_number == "BOM-10001"
    assert bom.components[0].line_number == 1

    detail = call("manufacturing.get_bom", {"id": str(bom.id)})
    assert [i.id for i in detail.component_items] == [leg.id]


def test_assembly_cannot_be_its_own_component(call, assembly):
    with pytest.raises(PreconditionFailedError):
        call(
            "manufacturing.create_bom",
            {
                "name": "Loop",
                "assembly_item_id": str(assembly.id),
                "components": [{"item_id": str(assembly.id), "quantity": "1"}],
            },
        )


def test_bom_needs_components(call, assembly):
    with pytest.raises(ValidationError):
        call(
            "manufacturing.create_bom",
            {"name": "Empty", "assembly_item_id": str(assembly.id), "components": []},
        )


def test_work_order_starts_planned(work_order):
    assert work_order.work_order_number == "WO-10001"
    assert work_order.status == WorkOrderStatus.PLANNED


def test_work_order_for_unknown_bom_is_not_found(call):
    with pytest.raises(NotFoundError):
        call(
            "manufacturing.create_work_order",
            {"bom_id": "00000000-0000-0000-0000-000000000000", "planned_quantity": "1"},
        )


def test_completion_defaults_quantity_and_stamps_dates(call, work_order):
    _move(call, work_order, "in_progress")
    completed = _move(call, work_order, "completed")

    assert completed.status == WorkOrderStatus.COMPLETED
    assert completed.completed_quantity == Decimal("10")
    assert completed.actual_start_date is not None
    assert completed.actual_end_date is not None


def test_work_order_cannot_move_backwards(call, work_order):
    _move(call, work_order, "completed", completed_quantity="8")

    with pytest.raises(PreconditionFailedError) as exc_info:
        _move(call, work_order, "in_progress")

    assert exc_info.value.message == "Cannot move work order from completed to in_progress"


@pytest.mark.parametrize(
    "passed, failed, expected",
    [
        ("0", "0", QCStatus.PENDING),
        ("3", "0", QCStatus.IN_PROGRESS),
        ("5", "0", QCStatus.PASSED),
        ("4", "1", QCStatus.FAILED),
    ],
)
def test_qc_status_follows_counts(call, leg, work_order, passed, failed, expected):
    inspection = call(
        "manufacturing.create_qc_inspection",
        {
            "item_id": str(leg.id),
            "work_order_id": str(work_order.id),
            "quantity_inspected": "5",
            "quantity_passed": passed,
            "quantity_failed": failed,
        },
    )

    assert inspection.inspection_number == "QCI-10001"
    assert inspection.status == expected


def test_qc_counts_cannot_exceed_inspected(call, leg):
    with pytest.raises(ValidationError):
        call(
            "manufacturing.create_qc_inspection",
            {
                "item_id": str(leg.id),
                "quantity_inspected": "5",
                "quantity_passed": "4",
                "quantity_failed": "2",
            },
        )
