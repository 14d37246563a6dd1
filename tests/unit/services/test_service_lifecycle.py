"""Tests for the repair ticket state machine."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from watchcraft.core.entities import DocumentKind, DocumentStatus, Service, ServiceStatus
from watchcraft.core.exceptions import InvalidTransitionError, ValidationError
from watchcraft.core.services import ALLOWED_TRANSITIONS, ServiceLifecycle

NOW = datetime(2024, 3, 15, 10, 30)

VALID_COMPLETION = {
    "completion_description": "Replaced crown",
    "final_cost": "1200.00",
    "warranty_period": 12,
}


def make_service(status: ServiceStatus = ServiceStatus.PENDING) -> Service:
    return Service(
        id=7,
        customer_id=1,
        watch_name="Seamaster",
        brand="Omega",
        model="300M",
        cost="800.00",
        status=status,
    )


@pytest.fixture
def lifecycle():
    return ServiceLifecycle()


class TestAllowedTransitions:
    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (ServiceStatus.PENDING, ServiceStatus.IN_PROGRESS),
            (ServiceStatus.PENDING, ServiceStatus.ON_HOLD),
            (ServiceStatus.IN_PROGRESS, ServiceStatus.ON_HOLD),
            (ServiceStatus.IN_PROGRESS, ServiceStatus.COMPLETED),
            (ServiceStatus.ON_HOLD, ServiceStatus.IN_PROGRESS),
        ],
    )
    def test_allowed(self, lifecycle, from_status, to_status):
        assert lifecycle.can_transition(from_status, to_status)

    def test_every_other_pair_rejected(self, lifecycle):
        allowed = {(f, t) for f, targets in ALLOWED_TRANSITIONS.items() for t in targets}
        for from_status in ServiceStatus:
            for to_status in ServiceStatus:
                if (from_status, to_status) in allowed:
                    continue
                payload = VALID_COMPLETION if to_status == ServiceStatus.COMPLETED else None
                with pytest.raises(InvalidTransitionError):
                    lifecycle.plan(make_service(from_status), to_status, payload, NOW)

    def test_completed_is_terminal(self, lifecycle):
        assert lifecycle.allowed_targets(ServiceStatus.COMPLETED) == frozenset()


class TestPlans:
    def test_start_sets_started_at(self, lifecycle):
        plan = lifecycle.plan(make_service(), "in-progress", now=NOW)
        assert plan.patch == {"status": ServiceStatus.IN_PROGRESS, "started_at": NOW}
        assert plan.revenue == 0
        assert plan.document is None

    def test_hold_sets_held_at(self, lifecycle):
        plan = lifecycle.plan(make_service(ServiceStatus.IN_PROGRESS), "on-hold", now=NOW)
        assert plan.patch["held_at"] == NOW

    def test_resume_changes_status_only(self, lifecycle):
        plan = lifecycle.plan(make_service(ServiceStatus.ON_HOLD), "in-progress", now=NOW)
        assert plan.patch == {"status": ServiceStatus.IN_PROGRESS}

    def test_completion(self, lifecycle):
        plan = lifecycle.plan(
            make_service(ServiceStatus.IN_PROGRESS), "completed", VALID_COMPLETION, NOW
        )
        assert plan.from_status == ServiceStatus.IN_PROGRESS
        assert plan.revenue == Decimal("1200.00")
        assert plan.document == DocumentKind.SERVICE_COMPLETION_INVOICE
        assert plan.patch["cost"] == Decimal("1200.00")
        assert plan.patch["completed_at"] == NOW
        assert plan.patch["actual_delivery"] == date(2024, 3, 15)
        assert plan.patch["warranty_period"] == 12
        assert plan.patch["completion_invoice_status"] == DocumentStatus.PENDING

    def test_completion_keeps_given_delivery_date(self, lifecycle):
        payload = {**VALID_COMPLETION, "actual_delivery": "2024-03-20"}
        plan = lifecycle.plan(make_service(ServiceStatus.IN_PROGRESS), "completed", payload, NOW)
        assert plan.patch["actual_delivery"] == date(2024, 3, 20)


class TestCompletionValidation:
    def test_missing_payload(self, lifecycle):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.plan(make_service(ServiceStatus.IN_PROGRESS), "completed", None, NOW)
        assert exc_info.value.details["field"] == "completion_description"

    def test_missing_description(self, lifecycle):
        payload = {k: v for k, v in VALID_COMPLETION.items() if k != "completion_description"}
        with pytest.raises(ValidationError):
            lifecycle.plan(make_service(ServiceStatus.IN_PROGRESS), "completed", payload, NOW)

    def test_warranty_out_of_range(self, lifecycle):
        payload = {**VALID_COMPLETION, "warranty_period": 61}
        with pytest.raises(ValidationError):
            lifecycle.plan(make_service(ServiceStatus.IN_PROGRESS), "completed", payload, NOW)

    def test_unknown_status(self, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.plan(make_service(), "shipped", now=NOW)

    def test_transition_checked_before_payload(self, lifecycle):
        with pytest.raises(InvalidTransitionError):
            lifecycle.plan(make_service(), "completed", None, NOW)
