"""
Repair ticket state machine.

Pure: decides whether a transition is allowed and what it writes, but
performs no I/O. The engine turns a ``TransitionPlan`` into writes.

    pending ──> in-progress ──> completed
       │          ↑    │
       └──> on-hold <──┘
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from watchcraft.core.entities.inputs import ServiceCompletion, parse_input
from watchcraft.core.entities.invoice import DocumentKind, DocumentStatus
from watchcraft.core.entities.money import ZERO
from watchcraft.core.entities.service import Service, ServiceStatus
from watchcraft.core.exceptions import InvalidTransitionError, ValidationError

ALLOWED_TRANSITIONS: dict[ServiceStatus, frozenset[ServiceStatus]] = {
    ServiceStatus.PENDING: frozenset({ServiceStatus.IN_PROGRESS, ServiceStatus.ON_HOLD}),
    ServiceStatus.IN_PROGRESS: frozenset({ServiceStatus.ON_HOLD, ServiceStatus.COMPLETED}),
    ServiceStatus.ON_HOLD: frozenset({ServiceStatus.IN_PROGRESS}),
    ServiceStatus.COMPLETED: frozenset(),
}


@dataclass
class TransitionPlan:
    """What a service status change writes."""

    service_id: int | None
    from_status: ServiceStatus
    to_status: ServiceStatus
    patch: dict[str, Any] = field(default_factory=dict)
    revenue: Decimal = ZERO
    document: DocumentKind | None = None


class ServiceLifecycle:
    """Validates service transitions and plans their side effects."""

    def allowed_targets(self, status: ServiceStatus) -> frozenset[ServiceStatus]:
        return ALLOWED_TRANSITIONS[status]

    def can_transition(self, from_status: ServiceStatus, to_status: ServiceStatus) -> bool:
        return to_status in ALLOWED_TRANSITIONS[from_status]

    def plan(
        self,
        service: Service,
        to_status: ServiceStatus | str,
        payload: ServiceCompletion | dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> TransitionPlan:
        """
        Plan moving ``service`` to ``to_status``.

        Raises:
            ValidationError: Unknown target status or bad completion payload.
            InvalidTransitionError: Transition not in the allowed set.
        """
        try:
            target = ServiceStatus(to_status)
        except ValueError as e:
            raise ValidationError("status", "unknown service status", to_status) from e

        current = service.status
        if not self.can_transition(current, target):
            raise InvalidTransitionError(service.id, current.value, target.value)

        now = now or datetime.utcnow()
        plan = TransitionPlan(
            service_id=service.id,
            from_status=current,
            to_status=target,
            patch={"status": target},
        )

        if target == ServiceStatus.IN_PROGRESS and current == ServiceStatus.PENDING:
            plan.patch["started_at"] = now
        elif target == ServiceStatus.ON_HOLD:
            plan.patch["held_at"] = now
        elif target == ServiceStatus.COMPLETED:
            if payload is None:
                raise ValidationError(
                    "completion_description", "completion details are required"
                )
            completion = parse_input(ServiceCompletion, payload)
            plan.patch.update(
                completed_at=now,
                actual_delivery=completion.actual_delivery or now.date(),
                cost=completion.final_cost,
                completion_description=completion.completion_description,
                completion_image=completion.completion_image,
                warranty_period=completion.warranty_period,
                completion_invoice_status=DocumentStatus.PENDING,
            )
            plan.revenue = completion.final_cost
            plan.document = DocumentKind.SERVICE_COMPLETION_INVOICE

        return plan
