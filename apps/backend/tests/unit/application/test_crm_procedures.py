"""
Name: CRM Procedure Tests

Responsibilities:
  - Support cases: numbering, assignment notification, resolution stamps
  - Case comments and support stats
  - Subscriptions: cancel once, MRR/ARR/churn metrics
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from erp.crosscutting.exceptions import PreconditionFailedError
from erp.domain.crm import CaseStatus, SubscriptionStatus

pytestmark = pytest.mark.unit


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _case(call, customer, **extra):
    return call(
        "crm.create_support_case",
        {"customer_id": str(customer.id), "subject": "Printer on fire", **extra},
    )


def _subscription(call, customer, value, start):
    return call(
        "crm.create_subscription",
        {
            "customer_id": str(customer.id),
            "plan_name": "Pro",
            "plan_type": "monthly",
            "monthly_value": value,
            "start_date": start,
        },
    )


class TestSupportCases:
    def test_case_numbering_and_default_status(self, call, customer):
        case = _case(call, customer)
        assert case.case_number == "CAS-10001"
        assert case.status == CaseStatus.OPEN

    def test_assignment_notifies_assignee(self, call, store, customer, seed_user):
        agent = seed_user(email="agent@example.com")

        case = _case(call, customer, assigned_to=str(agent.id))

        with store.transaction() as uow:
            inbox = uow.notifications.list_for_user(agent.id)
        assert [n.title for n in inbox] == ["Support Case Assigned"]
        assert inbox[0].message == f"{case.case_number}: Printer on fire"

    def test_contact_must_belong_to_customer(self, call, customer):
        other = call("customers.create_customer", {"company_name": "Other Co"})
        contact = call(
            "customers.create_contact",
            {"customer_id": str(other.id), "first_name": "Bo", "last_name": "Li"},
        )

        with pytest.raises(PreconditionFailedError):
            _case(call, customer, contact_id=str(contact.id))

    def test_closing_stamps_resolution(self, call, customer):
        case = _case(call, customer)

        closed = call("crm.update_support_case", {"id": str(case.id), "status": "closed"})

        assert closed.closed_at is not None
        assert closed.resolved_at is not None

    def test_comments_show_on_case_detail(self, call, customer):
        case = _case(call, customer)
        call("crm.add_case_comment", {"case_id": str(case.id), "body": "On it"})

        detail = call("crm.get_support_case", {"id": str(case.id)})

        assert [c.body for c in detail.comments] == ["On it"]
        assert detail.customer.id == customer.id

    def test_support_stats(self, call, customer):
        first = _case(call, customer)
        _case(call, customer)
        call("crm.update_support_case", {"id": str(first.id), "status": "resolved"})

        stats = call("crm.get_support_stats")

        assert stats.total_cases == 2
        assert stats.open_cases == 1
        assert stats.resolved_today == 1


class TestSubscriptions:
    def test_cancel_only_once(self, call, customer):
        subscription = _subscription(call, customer, "99", "2024-01-01")
        assert subscription.subscription_number == "SUB-10001"

        cancelled = call("crm.cancel_subscription", {"id": str(subscription.id)})
        assert cancelled.status == SubscriptionStatus.CANCELLED

        with pytest.raises(PreconditionFailedError) as exc_info:
            call("crm.cancel_subscription", {"id": str(subscription.id)})
        assert exc_info.value.message == "Subscription is already cancelled"

    def test_metrics(self, call, customer):
        _subscription(call, customer, "100", "2020-01-01")
        _subscription(call, customer, "50", _today())
        churned = _subscription(call, customer, "75", "2020-01-01")
        call("crm.cancel_subscription", {"id": str(churned.id)})

        metrics = call("crm.get_subscription_metrics")

        assert metrics.mrr == Decimal("150.00")
        assert metrics.arr == Decimal("1800.00")
        assert metrics.active_subscriptions == 2
        assert metrics.new_subscriptions == 1
        assert metrics.churned_subscriptions == 1
        assert metrics.churn_rate == Decimal("50.00")
