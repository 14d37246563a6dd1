"""Core domain services."""

from watchcraft.core.services.aggregate_engine import AggregateConsistencyEngine
from watchcraft.core.services.document_dispatcher import (
    DOCUMENT_TARGETS,
    DispatchOutcome,
    DocumentDispatcher,
    PendingDocument,
)
from watchcraft.core.services.service_lifecycle import (
    ALLOWED_TRANSITIONS,
    ServiceLifecycle,
    TransitionPlan,
)
from watchcraft.core.services.unit_of_work import UnitOfWork

__all__ = [
    "AggregateConsistencyEngine",
    "DocumentDispatcher",
    "DispatchOutcome",
    "PendingDocument",
    "DOCUMENT_TARGETS",
    "ServiceLifecycle",
    "TransitionPlan",
    "ALLOWED_TRANSITIONS",
    "UnitOfWork",
]
