"""
Domain exceptions for the Watchcraft engine.

Provides specific exception types for different error scenarios.
"""

from typing import Any


class WatchcraftError(Exception):
    """Base exception for all Watchcraft errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for UI display."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Validation Exceptions
class ValidationError(WatchcraftError):
    """Input validation failed."""

    def __init__(self, field: str, message: str, value: Any = None):
        super().__init__(
            f"Validation error for '{field}': {message}",
            code="VALIDATION_ERROR",
            details={
                "field": field,
                "message": message,
                "value": str(value)[:100] if value is not None else None,
            },
        )


# Lookup / constraint Exceptions
class NotFoundError(WatchcraftError):
    """Referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class ConflictError(WatchcraftError):
    """Unique constraint violated (duplicate code, email, phone, invoice number)."""

    def __init__(self, entity: str, field: str, value: Any = None):
        super().__init__(
            f"{entity} with this {field} already exists",
            code="CONFLICT",
            details={
                "entity": entity,
                "field": field,
                "value": str(value)[:100] if value is not None else None,
            },
        )


class ReferentialIntegrityError(ConflictError):
    """Entity is still referenced by other rows and cannot be deleted."""

    def __init__(self, entity: str, entity_id: Any, referenced_by: dict[str, int]):
        super().__init__(entity, "id", entity_id)
        self.message = (
            f"{entity} {entity_id} is still referenced by "
            + ", ".join(f"{count} {name}" for name, count in referenced_by.items())
        )
        self.args = (self.message,)
        self.code = "REFERENCED"
        self.details["referenced_by"] = referenced_by


# Business rule Exceptions
class InsufficientStockError(WatchcraftError):
    """Not enough stock to fulfil the request."""

    def __init__(self, item_id: Any, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"requested {requested}, available {available}",
            code="INSUFFICIENT_STOCK",
            details={
                "item_id": item_id,
                "requested": requested,
                "available": available,
            },
        )


class InvalidTransitionError(WatchcraftError):
    """Service status transition is not allowed."""

    def __init__(self, service_id: Any, from_status: str, to_status: str):
        super().__init__(
            f"Cannot move service {service_id} from '{from_status}' to '{to_status}'",
            code="INVALID_TRANSITION",
            details={
                "service_id": service_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )


class PartialFailureError(WatchcraftError):
    """
    A compensating write failed after a unit of work was partly applied.

    The affected rows are flagged for reconciliation. Never retried
    automatically.
    """

    def __init__(self, event: str, reason: str, state: dict[str, Any] | None = None):
        super().__init__(
            f"Partial failure during {event}: {reason}",
            code="PARTIAL_FAILURE",
            details={"event": event, "reason": reason, "state": state or {}},
        )


# Storage Exceptions
class StorageError(WatchcraftError):
    """Base exception for storage operations."""

    pass


class DatabaseError(StorageError):
    """Database operation failed."""

    def __init__(self, operation: str, error: str):
        super().__init__(
            f"Database error during {operation}: {error}",
            code="DATABASE_ERROR",
            details={"operation": operation, "error": error},
        )


class GuardViolationError(StorageError):
    """A per-row write guard (floor or expected value) did not hold."""

    def __init__(
        self,
        entity: str,
        entity_id: Any,
        field: str,
        actual: Any,
        guard: str,
        op: Any = None,
    ):
        super().__init__(
            f"Guard failed on {entity} {entity_id}: {field}={actual} violates {guard}",
            code="GUARD_VIOLATION",
            details={
                "entity": entity,
                "id": entity_id,
                "field": field,
                "actual": actual,
                "guard": guard,
            },
        )
        self.entity = entity
        self.entity_id = entity_id
        self.field = field
        self.actual = actual
        self.op = op


class BatchWriteError(StorageError):
    """
    A sequential (non-atomic) batch stopped part-way.

    ``applied`` holds the results of the writes that did persist so the
    caller can compensate them.
    """

    def __init__(self, applied: list[Any], failed_index: int, cause: Exception):
        super().__init__(
            f"Batch write failed at op {failed_index}: {cause}",
            code="BATCH_WRITE_ERROR",
            details={"failed_index": failed_index, "applied": len(applied)},
        )
        self.applied = applied
        self.failed_index = failed_index
        self.cause = cause


# Document Exceptions
class DocumentGenerationError(WatchcraftError):
    """Side-effect document could not be generated."""

    def __init__(self, kind: str, related_id: Any, reason: str):
        super().__init__(
            f"Failed to generate {kind} for {related_id}: {reason}",
            code="DOCUMENT_GENERATION_FAILED",
            details={"kind": kind, "related_id": related_id, "reason": reason},
        )


class ConfigurationError(WatchcraftError):
    """Configuration error."""

    pass
